"""HTTP health checks against a deployed stage."""

import asyncio
import time

import httpx

from deploykit.adapters.base import HealthProber
from deploykit.core.context import RunContext
from deploykit.models.config import DeploymentStage, HealthCheck, ProjectConfig
from deploykit.models.pipeline import HealthCheckResult, HealthReport
from deploykit.utils.logging import get_logger


def resolve_url(check_url: str, domain: str | None) -> str:
    """Absolute URL for a check; relative paths hang off ``https://{domain}``."""
    if check_url.startswith(("http://", "https://")):
        return check_url
    if not domain:
        raise ValueError(f"relative health check URL {check_url!r} needs a stage domain")
    return f"https://{domain}/{check_url.lstrip('/')}"


class HttpHealthProber(HealthProber):
    """Runs the configured checks concurrently with httpx."""

    def __init__(
        self,
        config: ProjectConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        context: RunContext | None = None,
    ):
        self.config = config
        self.transport = transport
        self.logger = context.child("health") if context else get_logger("health")

    async def run_checks(self, stage: DeploymentStage) -> HealthReport:
        domain = self.config.get_stage_config(stage).domain
        async with httpx.AsyncClient(transport=self.transport, follow_redirects=True) as client:
            results = await asyncio.gather(
                *(self._run_check(client, check, domain) for check in self.config.health_checks)
            )

        report = HealthReport(results=list(results))
        self.logger.info(
            "health.completed",
            stage=stage.value,
            total=len(report.results),
            failed=report.failed_checks,
        )
        return report

    async def _run_check(
        self, client: httpx.AsyncClient, check: HealthCheck, domain: str | None
    ) -> HealthCheckResult:
        name = check.name or check.url
        start = time.perf_counter()

        try:
            url = resolve_url(check.url, domain)
        except ValueError as e:
            return HealthCheckResult(name=name, url=check.url, passed=False, error=str(e))

        try:
            response = await client.get(url, timeout=check.timeout_ms / 1000)
        except httpx.HTTPError as e:
            self.logger.warning("health.check_error", check=name, url=url, error=str(e))
            return HealthCheckResult(
                name=name,
                url=url,
                passed=False,
                duration_ms=int((time.perf_counter() - start) * 1000),
                error=f"{type(e).__name__}: {e}",
            )

        duration_ms = int((time.perf_counter() - start) * 1000)
        error = None
        if response.status_code != check.expected_status and not (
            check.expected_status == 200 and 200 <= response.status_code < 400
        ):
            error = f"expected status {check.expected_status}, got {response.status_code}"
        elif check.search_text and check.search_text not in response.text:
            error = f"response does not contain {check.search_text!r}"

        return HealthCheckResult(
            name=name,
            url=url,
            passed=error is None,
            status_code=response.status_code,
            duration_ms=duration_ms,
            error=error,
        )
