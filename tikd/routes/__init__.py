"""API blueprints, one module per resource.

Each module exposes ``bp``; :func:`tikd.create_app` registers everything in
``BLUEPRINTS``.
"""
from ..auth import bp as auth_bp
from .dashboard import bp as dashboard_bp
from .events import bp as events_bp
from .friends import bp as friends_bp
from .org_roles import bp as org_roles_bp
from .org_team import bp as org_team_bp
from .organizations import bp as organizations_bp
from .teams import bp as teams_bp
from .ticket_types import bp as ticket_types_bp
from .tickets import bp as tickets_bp

BLUEPRINTS = (
    auth_bp,
    dashboard_bp,
    events_bp,
    ticket_types_bp,
    tickets_bp,
    organizations_bp,
    org_team_bp,
    org_roles_bp,
    teams_bp,
    friends_bp,
)
