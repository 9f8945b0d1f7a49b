"""
Switches Router - manage switches and trigger evaluation.

Endpoints:
==========
- GET    /switches                 → List switches with their state
- POST   /switches                 → Add a switch
- GET    /switches/{id}            → Read one switch
- PUT    /switches/{id}            → Replace its rules (re-evaluated from cache)
- DELETE /switches/{id}            → Remove it
- GET    /switches/{id}/state      → Current SwitchState
- POST   /switches/{id}/refresh    → On-demand fetch + evaluation (debounced)
- POST   /switches/{id}/apply      → Re-apply rules to cached events
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from calswitch.deps import get_registry, get_scheduler, get_token_store, require_api_token
from calswitch.models import SwitchState, SwitchStatus
from calswitch.schemas.switch import RefreshOut, SwitchOut, SwitchRuleIn
from calswitch.services.scheduler import PollScheduler
from calswitch.services.switch_registry import (
    DuplicateSwitchError,
    SwitchNotFoundError,
    SwitchRegistry,
)
from calswitch.services.token_store import TokenStore


logger = logging.getLogger("calswitch.routers.switches")


router = APIRouter(
    prefix="/switches",
    tags=["switches"],
    dependencies=[Depends(require_api_token)],
)


def _switch_out(registry: SwitchRegistry, switch_id: str) -> SwitchOut:
    try:
        return SwitchOut(rule=registry.get_rule(switch_id), state=registry.get_state(switch_id))
    except SwitchNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Switch not found")


@router.get("", response_model=List[SwitchOut])
def list_switches(registry: SwitchRegistry = Depends(get_registry)):
    return [SwitchOut(rule=r, state=registry.get_state(r.switch_id)) for r in registry.rules()]


@router.post("", response_model=SwitchOut, status_code=status.HTTP_201_CREATED)
def create_switch(
    body: SwitchRuleIn,
    registry: SwitchRegistry = Depends(get_registry),
    scheduler: PollScheduler = Depends(get_scheduler),
    token_store: TokenStore = Depends(get_token_store),
):
    """
    Add a switch.

    The switch starts as "connected" when its provider has tokens and as
    "unconfigured" otherwise. If events for its provider are already cached,
    it is evaluated right away.

    Raises:
        409 Conflict: If a switch with the same id exists
    """
    initial = (
        SwitchStatus.CONNECTED
        if token_store.get(body.provider).is_connected
        else SwitchStatus.UNCONFIGURED
    )
    try:
        rule = registry.add(body.to_rule(), status=initial)
    except DuplicateSwitchError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    scheduler.reevaluate(rule.switch_id)
    return _switch_out(registry, rule.switch_id)


@router.get("/{switch_id}", response_model=SwitchOut)
def get_switch(switch_id: str, registry: SwitchRegistry = Depends(get_registry)):
    return _switch_out(registry, switch_id)


@router.put("/{switch_id}", response_model=SwitchOut)
def update_switch(
    switch_id: str,
    body: SwitchRuleIn,
    registry: SwitchRegistry = Depends(get_registry),
    scheduler: PollScheduler = Depends(get_scheduler),
):
    """Replace a switch's rules and re-evaluate it against cached events."""
    try:
        registry.update(body.to_rule(switch_id))
    except SwitchNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Switch not found")

    scheduler.reevaluate(switch_id)
    return _switch_out(registry, switch_id)


@router.delete("/{switch_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_switch(switch_id: str, registry: SwitchRegistry = Depends(get_registry)):
    if not registry.remove(switch_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Switch not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{switch_id}/state", response_model=SwitchState)
def get_switch_state(switch_id: str, registry: SwitchRegistry = Depends(get_registry)):
    return _switch_out(registry, switch_id).state


@router.post("/{switch_id}/refresh", response_model=RefreshOut, status_code=status.HTTP_202_ACCEPTED)
async def refresh_switch(
    switch_id: str,
    response: Response,
    reason: str = Query("api", max_length=100),
    registry: SwitchRegistry = Depends(get_registry),
    scheduler: PollScheduler = Depends(get_scheduler),
):
    """
    Fetch the switch's provider now and re-evaluate this switch.

    Returns 429 when another refresh was accepted moments ago.
    """
    if switch_id not in registry:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Switch not found")

    accepted = await scheduler.request_fetch(switch_id, reason=reason)
    if not accepted:
        response.status_code = status.HTTP_429_TOO_MANY_REQUESTS
        return RefreshOut(accepted=False)

    state = registry.get_state(switch_id) if switch_id in registry else None
    return RefreshOut(accepted=True, state=state)


@router.post("/{switch_id}/apply", response_model=SwitchState)
def apply_rules(
    switch_id: str,
    scheduler: PollScheduler = Depends(get_scheduler),
):
    """Re-apply the switch's rules to the cached events without fetching."""
    state = scheduler.reevaluate(switch_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Switch not found")
    return state
