from .auth import (
    AuthService,
    get_current_user,
    require_roles,
    require_admin_user,
    require_staff_user,
)
