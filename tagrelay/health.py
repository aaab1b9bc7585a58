"""
Health check endpoints for liveness and readiness probes.
"""
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import psutil
from .logging import get_logger
from .services.crypto import SecretStore

logger = get_logger()


class HealthChecker:
    """
    Health checker for the relay service.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (can the service relay traffic?)

    Neither check needs the shared secret to respond.
    """

    def __init__(self, service_name: str = "tagrelay", version: str = "0.1.0"):
        self.service_name = service_name
        self.version = version

    @staticmethod
    def _timestamp() -> str:
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def liveness(self) -> Dict[str, Any]:
        """
        Liveness check - basic health check.

        Returns:
            dict: Health status with service info and timestamp
        """
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._timestamp(),
        }

    async def readiness(self, store: Optional[SecretStore] = None) -> Dict[str, Any]:
        """
        Readiness check - comprehensive health check.

        Checks:
        - A fresh shared secret is held
        - Disk space availability
        - Memory availability

        Args:
            store: Secret store to inspect

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {
            "secret": self._check_secret(store),
            "disk_space": self._check_disk_space(),
            "memory": self._check_memory(),
        }
        overall_status = "ready"
        if any(check["status"] == "error" for check in checks.values()):
            overall_status = "not_ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._timestamp(),
            "checks": checks,
        }

    def _check_secret(self, store: Optional[SecretStore]) -> Dict[str, Any]:
        if store is None:
            return {"status": "error", "message": "Secret store not initialized"}

        secret = store.fresh()
        if secret is None:
            return {"status": "error", "message": "No valid secret"}

        return {
            "status": "ok",
            "ttl_remaining": round(secret.ttl_remaining, 1),
        }

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)

        Returns:
            dict: Disk space health check result
        """
        try:
            disk = psutil.disk_usage("/")
            available_gb = disk.free / (1024**3)

            if available_gb < threshold_gb:
                status = "error"
            elif available_gb < threshold_gb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_gb": round(available_gb, 2),
                "used_percent": disk.percent,
            }

        except (OSError, psutil.Error) as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {"status": "error", "error": "disk check failed"}

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)

        Returns:
            dict: Memory health check result
        """
        try:
            memory = psutil.virtual_memory()
            available_mb = memory.available / (1024**2)

            if available_mb < threshold_mb:
                status = "error"
            elif available_mb < threshold_mb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_mb": round(available_mb, 2),
                "used_percent": memory.percent,
            }

        except (OSError, psutil.Error) as e:
            logger.warning("memory_health_check_failed", error=str(e))
            return {"status": "error", "error": "memory check failed"}
