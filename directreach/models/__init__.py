# Models package - every table is registered on import
from directreach.models.client import Client, Campaign, Prospect, ContentLink
from directreach.models.settings import ClientSettingsRecord, GlobalThresholds, GlobalScoringRules
from directreach.models.template import EmailTemplate
from directreach.models.tracking import EmailTracking
from directreach.models.activity import ActivityLog, Actions
