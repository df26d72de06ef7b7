"""Infrastructure audit endpoints."""

from fastapi import APIRouter

from deploykit.api.deps import ServicesDep
from deploykit.models.analysis import AuditReport

router = APIRouter()


@router.get(
    "/audit",
    response_model=AuditReport,
    summary="Classify every CloudFront distribution",
    description="Read-only. Cleanup is only available from the CLI, where it can be confirmed.",
)
async def audit_infrastructure(services: ServicesDep) -> AuditReport:
    return await services.cloudfront().audit()
