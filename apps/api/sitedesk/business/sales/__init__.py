from sitedesk.business.sales.schemas import (
    AssignmentResult,
    ManualAssignmentRequest,
    SalesRepMetricsRead,
    SalesRepSummary,
    SalesRepWorkloadRead,
)
from sitedesk.business.sales.service import (
    SalesAssignmentService,
    SalesRepWorkload,
    sales_assignment_service,
    utilization_percentage,
)

__all__ = [
    "AssignmentResult",
    "ManualAssignmentRequest",
    "SalesRepMetricsRead",
    "SalesRepSummary",
    "SalesRepWorkloadRead",
    "SalesAssignmentService",
    "SalesRepWorkload",
    "sales_assignment_service",
    "utilization_percentage",
]
