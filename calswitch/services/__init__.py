"""Services - storage, token store, evaluation, registry and scheduler."""
