# Marketplace Routers Module
# Exports all modular API routers for the pipeline

from routers.campaigns import router as campaigns_router
from routers.admin_campaigns import router as admin_campaigns_router
from routers.payouts import router as payouts_router
from routers.proposals import router as proposals_router
from routers.payments import router as payments_router
from routers.disputes import router as disputes_router

__all__ = [
    'campaigns_router',
    'admin_campaigns_router',
    'payouts_router',
    'proposals_router',
    'payments_router',
    'disputes_router',
]
