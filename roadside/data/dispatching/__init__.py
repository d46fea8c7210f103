"""
Dispatching models package

Main components:
- ServiceRequest: the request record and single source of truth for its status
- StatusHistory: append-only lifecycle timeline
- RequestNote: free-text notes from the participants

Status changes go through the business layer (ServiceRequestContext / DispatchEngine),
never through direct attribute writes from routes.
"""
