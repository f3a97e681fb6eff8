from src.api.security import (
    Authenticated,
    Rejected,
    issue_dashboard_session,
    require_dashboard_owner,
    resolve_owner,
)
