"""
Routers module - API endpoint handlers organized by feature.

- oauth: Provider authorization, credentials and connection status
- switches: Switch CRUD, state, on-demand refresh and rule application
- poll: Manual scheduler tick
"""
