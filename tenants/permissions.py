# tenants/permissions.py
import logging

from django.conf import settings
from rest_framework.permissions import BasePermission

logger = logging.getLogger("fiscal.tenants")


class ProvisioningTokenPermission(BasePermission):
    """
    Permite provisionamento de tenant via endpoint público.

    Regras:
      - Requer um token estático no header X-Tenant-Provisioning-Token.
      - O token deve bater com TENANT_PROVISIONING_TOKEN do settings.
    """

    message = "Você não tem permissão para executar essa ação."

    def has_permission(self, request, view) -> bool:
        header_token = request.headers.get("X-Tenant-Provisioning-Token")
        env_token = getattr(settings, "TENANT_PROVISIONING_TOKEN", None)

        if not header_token:
            logger.warning(
                "provisioning_permission_denied_no_header_token",
                extra={"reason": "missing_header_token", "path": request.path},
            )
            return False

        if not env_token:
            logger.error(
                "provisioning_permission_denied_no_env_token",
                extra={"reason": "missing_env_token", "path": request.path},
            )
            return False

        if header_token != env_token:
            logger.warning(
                "provisioning_permission_denied_invalid_token",
                extra={"reason": "invalid_token", "path": request.path},
            )
            return False

        return True
