"""
Health checks for liveness and readiness probes.
"""
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any
import psutil
from .config import get_settings
from .logging import SERVICE_NAME, get_logger
from .services.allocator import Allocator

logger = get_logger()


class HealthChecker:
    """
    Health checker for the lineage proxy.

    Provides:
    - Liveness checks (is the service running?)
    - Readiness checks (can events be allocated and stored?)
    """

    def __init__(self, service_name: str = SERVICE_NAME, version: str = "0.1.0"):
        self.service_name = service_name
        self.version = version
        self.settings = get_settings()

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

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
            "timestamp": self._now(),
        }

    async def readiness(self, allocator: Allocator) -> Dict[str, Any]:
        """
        Readiness check.

        Checks:
        - Counter store reachable (degraded only: allocation falls back)
        - Sink writable
        - Disk space for filesystem storage
        - Memory availability

        Returns:
            dict: Readiness status with detailed check results
        """
        checks = {}
        overall_status = "ready"

        components = await allocator.health_check()
        checks["counter_store"] = {
            "status": "ok" if components["counter_store"] else "degraded",
            "type": allocator.counter_store.name,
        }
        checks["sink"] = {
            "status": "ok" if components["sink"] else "error",
            "type": allocator.sink.name,
        }
        if not components["sink"]:
            overall_status = "not_ready"

        if allocator.sink.name == "filesystem":
            disk_check = self._check_disk_space(self.settings.STORAGE_DIR)
            checks["disk_space"] = disk_check
            if disk_check["status"] == "error":
                overall_status = "not_ready"

        memory_check = self._check_memory()
        checks["memory"] = memory_check
        if memory_check["status"] == "error":
            overall_status = "not_ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._now(),
            "checks": checks,
        }

    def _check_disk_space(self, directory: Path, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space where events are written.

        Args:
            directory: Storage directory (its nearest existing parent is measured)
            threshold_gb: Minimum available disk space in GB (default: 1.0)

        Returns:
            dict: Disk space health check result
        """
        target = Path(directory).absolute()
        while not target.exists() and target != target.parent:
            target = target.parent
        try:
            disk = psutil.disk_usage(str(target))
        except OSError as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}

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
            "total_gb": round(disk.total / (1024**3), 2),
            "used_percent": disk.percent,
        }

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)

        Returns:
            dict: Memory health check result
        """
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
            "total_mb": round(memory.total / (1024**2), 2),
            "used_percent": memory.percent,
        }
