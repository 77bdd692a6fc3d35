"""Lemlist activity type -> canonical event type mapping."""

from __future__ import annotations

import re

SMARTLEAD_LEAD_CREATED = "lead_created"

LEMLIST_EVENT_TYPES: dict[str, str] = {
    # Email
    "emailsSent": "email_sent",
    "emailsOpened": "email_opened",
    "emailsClicked": "email_clicked",
    "emailsReplied": "email_replied",
    "emailsBounced": "email_bounced",
    "emailsUnsubscribed": "email_unsubscribed",
    "emailsFailed": "email_failed",
    # LinkedIn
    "linkedinSent": "linkedin_message_sent",
    "linkedinOpened": "linkedin_message_opened",
    "linkedinReplied": "linkedin_message_replied",
    "linkedinInviteSent": "linkedin_invite_sent",
    "linkedinInviteAccepted": "linkedin_invite_accepted",
    "linkedinConnected": "linkedin_connected",
    "linkedinVisit": "linkedin_profile_visited",
    "linkedinVisitDone": "linkedin_profile_visited",
    "linkedinInviteDone": "linkedin_invite_done",
    "linkedinDone": "linkedin_done",
    "linkedinSendFailed": "linkedin_send_failed",
    "linkedinMessageAccepted": "linkedin_message_accepted",
    "linkedinVoiceNoteDone": "linkedin_voice_note_done",
    # Lead lifecycle
    "meetingBooked": "meeting_booked",
    "contacted": "contacted",
    "hooked": "hooked",
    "attracted": "attracted",
    "warmed": "warmed",
    "interested": "interested",
    "notInterested": "not_interested",
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def map_lemlist_event_type(activity_type: str | None) -> str:
    """Map a Lemlist activity type to its canonical event type.

    Unknown camelCase types are converted to snake_case
    (``someNewType`` -> ``some_new_type``); a missing type is ``unknown``.
    """
    if not activity_type or not activity_type.strip():
        return "unknown"
    activity_type = activity_type.strip()
    mapped = LEMLIST_EVENT_TYPES.get(activity_type)
    if mapped:
        return mapped
    return _CAMEL_BOUNDARY.sub("_", activity_type).lower()
