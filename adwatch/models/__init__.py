from adwatch.models.integration import Integration, AdAccount, Provider, IntegrationStatus
from adwatch.models.campaign import Campaign, AdSet, Ad
from adwatch.models.metric import Metric, MetricBreakdown
from adwatch.models.alert import CampaignAlert
from adwatch.models.sync import SyncLog, SyncSchedule

__all__ = [
    "Integration",
    "AdAccount",
    "Provider",
    "IntegrationStatus",
    "Campaign",
    "AdSet",
    "Ad",
    "Metric",
    "MetricBreakdown",
    "CampaignAlert",
    "SyncLog",
    "SyncSchedule",
]
