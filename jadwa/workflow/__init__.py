"""Engagement lifecycle engines.

Consultations (video/chat) and study requests, with their transition tables
and the chat visibility rule shared with the message relay.
"""

from jadwa.workflow.consultations import ConsultationWorkflow
from jadwa.workflow.studies import StudyWorkflow
from jadwa.workflow.transitions import ConsultationStateValidator, StudyStateValidator

__all__ = [
    "ConsultationWorkflow",
    "StudyWorkflow",
    "ConsultationStateValidator",
    "StudyStateValidator",
]
