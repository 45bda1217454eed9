from onam_api.decorators.auth import require_auth, require_role

__all__ = ['require_auth', 'require_role']
