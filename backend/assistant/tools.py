"""Assistant tools: OpenAI function schemas and their handlers.

Every handler reads only rows the authenticated user may see. Failures are
returned as ``{"error": ...}`` dicts so the model can explain them in the
conversation instead of the request failing.
"""

import json
import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import CareRequest, Dog, FoundDog, HealthLog, LostAlert, MedRecord, Sighting, SitterLog

logger = logging.getLogger(__name__)

EXPIRING_SOON_DAYS = 30
SEARCH_MAX_CANDIDATES = 30
SEARCH_MAX_DAYS_BACK = 365
SITTER_LOG_SUMMARY_KEYS = {
    "walk": "walks",
    "meal": "meals",
    "potty": "potty",
    "play": "play",
    "note": "notes",
}


GET_MY_DOGS_TOOL = {
    "type": "function",
    "function": {
        "name": "get_my_dogs",
        "description": (
            "Get all dogs owned by the current user. Call this when user asks about their "
            "dogs, pets, or needs to select a dog."
        ),
        "parameters": {"type": "object", "properties": {}, "required": []},
    },
}

GET_DOG_DETAILS_TOOL = {
    "type": "function",
    "function": {
        "name": "get_dog_details",
        "description": "Get detailed information about a specific dog including health logs.",
        "parameters": {
            "type": "object",
            "properties": {
                "dog_id": {"type": "string", "description": "The UUID of the dog"},
            },
            "required": ["dog_id"],
        },
    },
}

GET_MEDICATION_RECORDS_TOOL = {
    "type": "function",
    "function": {
        "name": "get_medication_records",
        "description": (
            "Get medication and vaccine records for the user's dogs. Call this when user asks "
            "about vaccines, medications, expiring treatments, or health records."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "dog_id": {
                    "type": "string",
                    "description": (
                        "Optional: specific dog UUID. If omitted, returns records for all "
                        "user's dogs."
                    ),
                },
            },
            "required": [],
        },
    },
}

GET_CARE_REQUESTS_TOOL = {
    "type": "function",
    "function": {
        "name": "get_care_requests",
        "description": (
            "Get care requests created by or assigned to the user. Call this when user asks "
            "about their care requests, sitter jobs, walks, or watch requests."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "status": {
                    "type": "string",
                    "enum": ["open", "closed", "all"],
                    "description": "Filter by status. Defaults to 'open'.",
                },
                "role": {
                    "type": "string",
                    "enum": ["owner", "sitter", "all"],
                    "description": "Filter by user's role. Defaults to 'all'.",
                },
            },
            "required": [],
        },
    },
}

GET_LOST_ALERTS_TOOL = {
    "type": "function",
    "function": {
        "name": "get_lost_alerts",
        "description": (
            "Get lost dog alerts for the user's dogs and any sightings. Call this when user "
            "asks about lost dogs, missing pets, or sightings."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "status": {
                    "type": "string",
                    "enum": ["active", "resolved", "all"],
                    "description": "Filter by status. Defaults to 'active'.",
                },
            },
            "required": [],
        },
    },
}

GET_SITTER_LOGS_TOOL = {
    "type": "function",
    "function": {
        "name": "get_sitter_logs",
        "description": (
            "Get sitter activity logs for a care request. Call this when user asks about what "
            "happened during a sitter job, walks, or care activities."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "request_id": {"type": "string", "description": "The UUID of the care request"},
            },
            "required": ["request_id"],
        },
    },
}

GET_FOUND_DOGS_NEARBY_TOOL = {
    "type": "function",
    "function": {
        "name": "get_found_dogs_nearby",
        "description": "Get found dog posts. Call this when user asks about found dogs in the community.",
        "parameters": {
            "type": "object",
            "properties": {
                "status": {
                    "type": "string",
                    "enum": ["active", "reunited", "all"],
                    "description": "Filter by status. Defaults to 'active'.",
                },
            },
            "required": [],
        },
    },
}

SEARCH_FOUND_DOGS_TOOL = {
    "type": "function",
    "function": {
        "name": "search_found_dogs_by_attributes",
        "description": (
            "Find community found-dog posts that could be the user's lost dog. Use this after "
            "the user shares a photo or description of their dog: describe the dog's breed, "
            "color, size and distinctive markings, and this returns recent candidate posts "
            "with instructions for judging which ones match."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "breed_guess": {
                    "type": "string",
                    "description": "Best guess of the breed or mix, e.g. 'golden retriever mix'.",
                },
                "color": {
                    "type": "string",
                    "description": "Main coat color(s), e.g. 'black and tan'.",
                },
                "size": {
                    "type": "string",
                    "enum": ["small", "medium", "large"],
                    "description": "Overall size of the dog.",
                },
                "markings": {
                    "type": "string",
                    "description": "Optional distinctive markings, e.g. 'white blaze on chest'.",
                },
                "days_back": {
                    "type": "integer",
                    "description": "How many days of found-dog posts to search. Defaults to 30.",
                },
            },
            "required": ["breed_guess", "color", "size"],
        },
    },
}

TOOLS = [
    GET_MY_DOGS_TOOL,
    GET_DOG_DETAILS_TOOL,
    GET_MEDICATION_RECORDS_TOOL,
    GET_CARE_REQUESTS_TOOL,
    GET_LOST_ALERTS_TOOL,
    GET_SITTER_LOGS_TOOL,
    GET_FOUND_DOGS_NEARBY_TOOL,
    SEARCH_FOUND_DOGS_TOOL,
]

MATCHING_INSTRUCTIONS = """How to compare these candidates with the user's dog:
1. COLOR MISMATCH ALWAYS DISQUALIFIES. If a candidate's color clearly differs from the user's dog, drop it, even if the breed matches.
2. SIZE MISMATCH ALWAYS DISQUALIFIES. A small dog cannot be a large dog's match.
3. Breed similarity is secondary. Found-dog breeds are guesses by strangers; treat them as hints only.
4. Distinctive markings break ties between otherwise plausible candidates.
5. Compare against the photo the user shared earlier in this conversation when one is available.
Present at most 3 plausible matches, most likely first, each with a deep link like **[View post](/found/FOUND_DOG_ID)**, and say plainly if none are plausible. Never claim a match is certain."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _parse_uuid(value: Any) -> uuid.UUID | None:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _row(obj, *fields: str) -> dict:
    return {name: getattr(obj, name) for name in fields}


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def serialize_result(result: dict) -> str:
    """JSON text handed back to the model as tool output."""
    return json.dumps(result, default=_json_default)


def medication_status(expires_on: date, today: date | None = None) -> tuple[int, str, str]:
    """Classify a record by days until expiry.

    Returns:
        (days_until_expiry, status, status_text) where status is one of
        "expired", "expiring_soon" or "active".
    """
    today = today or datetime.now(timezone.utc).date()
    days = (expires_on - today).days

    if days < 0:
        status = "expired"
    elif days <= EXPIRING_SOON_DAYS:
        status = "expiring_soon"
    else:
        status = "active"

    if days < 0:
        ago = abs(days)
        status_text = f"Expired {ago} day{'s' if ago != 1 else ''} ago"
    elif days == 0:
        status_text = "Expires today"
    else:
        status_text = f"Expires in {days} day{'s' if days != 1 else ''}"
    return days, status, status_text


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

async def get_my_dogs(db: AsyncSession, user_id: uuid.UUID, args: dict) -> dict:
    result = await db.execute(
        select(Dog).where(Dog.owner_id == user_id).order_by(Dog.created_at.desc())
    )
    dogs = result.scalars().all()
    if not dogs:
        return {
            "message": "No dogs found. The user hasn't added any dogs yet.",
            "suggestion": "You can add a dog by going to Create → Add Dog in the app.",
        }
    return {
        "dogs": [
            _row(d, "id", "name", "breed", "age", "date_of_birth", "weight", "weight_unit",
                 "is_lost", "photo_url", "notes")
            for d in dogs
        ],
        "count": len(dogs),
    }


async def get_dog_details(db: AsyncSession, user_id: uuid.UUID, args: dict) -> dict:
    dog_id = _parse_uuid(args.get("dog_id"))
    dog = None
    if dog_id is not None:
        result = await db.execute(
            select(Dog).where(Dog.id == dog_id, Dog.owner_id == user_id)
        )
        dog = result.scalar_one_or_none()
    if dog is None:
        return {"error": "Dog not found or access denied"}

    logs = await db.execute(
        select(HealthLog)
        .where(HealthLog.dog_id == dog_id, HealthLog.owner_id == user_id)
        .order_by(HealthLog.created_at.desc())
        .limit(10)
    )
    return {
        "dog": _row(dog, "id", "name", "breed", "age", "date_of_birth", "weight",
                    "weight_unit", "is_lost", "photo_url", "photo_urls", "notes", "created_at"),
        "health_logs": [
            _row(log, "id", "log_type", "value", "notes", "created_at")
            for log in logs.scalars().all()
        ],
    }


async def get_medication_records(db: AsyncSession, user_id: uuid.UUID, args: dict) -> dict:
    query = (
        select(MedRecord, Dog.name)
        .join(Dog, MedRecord.dog_id == Dog.id)
        .where(MedRecord.owner_id == user_id)
        .order_by(MedRecord.expires_on.asc())
    )
    if args.get("dog_id"):
        dog_id = _parse_uuid(args["dog_id"])
        if dog_id is None:
            return {"error": "Invalid dog_id"}
        query = query.where(MedRecord.dog_id == dog_id)

    rows = (await db.execute(query.limit(50))).all()
    if not rows:
        return {
            "message": "No medication or vaccine records found.",
            "suggestion": "You can add records by going to Create → Add Medication Record in the app.",
        }

    today = datetime.now(timezone.utc).date()
    records = []
    for record, dog_name in rows:
        days, status, status_text = medication_status(record.expires_on, today)
        entry = _row(record, "id", "dog_id", "name", "record_type", "date_given", "expires_on",
                     "duration_value", "duration_unit", "notes")
        entry.update(
            dog_name=dog_name,
            days_until_expiry=days,
            status=status,
            status_text=status_text,
        )
        records.append(entry)

    expiring = [r for r in records if r["status"] == "expiring_soon"]
    expired = [r for r in records if r["status"] == "expired"]
    return {
        "records": records,
        "count": len(records),
        "expiring_soon_count": len(expiring),
        "expired_count": len(expired),
        "summary": {
            "expiring_soon": [f"{r['dog_name']}'s {r['name']} ({r['status_text']})" for r in expiring],
            "expired": [f"{r['dog_name']}'s {r['name']} ({r['status_text']})" for r in expired],
        },
    }


async def get_care_requests(db: AsyncSession, user_id: uuid.UUID, args: dict) -> dict:
    status = args.get("status") or "open"
    role = args.get("role") or "all"

    query = (
        select(CareRequest, Dog.name, Dog.breed)
        .join(Dog, CareRequest.dog_id == Dog.id)
        .order_by(CareRequest.created_at.desc())
        .limit(20)
    )
    if status != "all":
        query = query.where(CareRequest.status == status)
    if role == "owner":
        query = query.where(CareRequest.owner_id == user_id)
    elif role == "sitter":
        query = query.where(CareRequest.assigned_sitter_id == user_id)
    else:
        query = query.where(
            or_(CareRequest.owner_id == user_id, CareRequest.assigned_sitter_id == user_id)
        )

    rows = (await db.execute(query)).all()
    if not rows:
        return {
            "message": "No care requests found.",
            "suggestion": "You can create a care request by going to Create → Request Care in the app.",
        }

    requests = []
    for req, dog_name, dog_breed in rows:
        entry = _row(req, "id", "care_type", "time_window", "request_date", "start_time",
                     "end_time", "location_label", "location_text", "notes", "pay_offered",
                     "pay_amount", "pay_currency", "status", "assigned_sitter_id", "owner_id",
                     "created_at")
        entry.update(
            dog_name=dog_name,
            dog_breed=dog_breed,
            user_role="owner" if req.owner_id == user_id else "sitter",
            is_assigned=req.assigned_sitter_id is not None,
        )
        requests.append(entry)

    return {
        "requests": requests,
        "count": len(requests),
        "as_owner": sum(1 for r in requests if r["user_role"] == "owner"),
        "as_sitter": sum(1 for r in requests if r["user_role"] == "sitter"),
    }


async def get_lost_alerts(db: AsyncSession, user_id: uuid.UUID, args: dict) -> dict:
    status = args.get("status") or "active"

    query = (
        select(LostAlert, Dog.name, Dog.breed, Dog.photo_url)
        .join(Dog, LostAlert.dog_id == Dog.id)
        .where(LostAlert.owner_id == user_id)
        .order_by(LostAlert.created_at.desc())
        .limit(10)
    )
    if status != "all":
        query = query.where(LostAlert.status == status)

    rows = (await db.execute(query)).all()
    if not rows:
        return {
            "message": "No lost dog alerts found for your dogs.",
            "suggestion": "If your dog is lost, go to their profile and tap 'Mark as Lost' to create an alert.",
        }

    alert_ids = [alert.id for alert, *_ in rows]
    sightings_result = await db.execute(
        select(Sighting)
        .where(Sighting.alert_id.in_(alert_ids))
        .order_by(Sighting.created_at.desc())
    )
    by_alert: dict[uuid.UUID, list[dict]] = {}
    total_sightings = 0
    for s in sightings_result.scalars().all():
        by_alert.setdefault(s.alert_id, []).append(
            _row(s, "id", "alert_id", "message", "location_text", "created_at")
        )
        total_sightings += 1

    alerts = []
    for alert, dog_name, dog_breed, dog_photo_url in rows:
        sightings = by_alert.get(alert.id, [])
        entry = _row(alert, "id", "title", "description", "last_seen_location",
                     "location_label", "status", "created_at")
        entry.update(
            dog_name=dog_name,
            dog_breed=dog_breed,
            dog_photo_url=dog_photo_url,
            sightings_count=len(sightings),
            recent_sightings=sightings[:3],
        )
        alerts.append(entry)

    return {"alerts": alerts, "count": len(alerts), "total_sightings": total_sightings}


async def get_sitter_logs(db: AsyncSession, user_id: uuid.UUID, args: dict) -> dict:
    request_id = _parse_uuid(args.get("request_id"))
    row = None
    if request_id is not None:
        result = await db.execute(
            select(CareRequest, Dog.name)
            .outerjoin(Dog, CareRequest.dog_id == Dog.id)
            .where(CareRequest.id == request_id)
        )
        row = result.first()
    if row is None:
        return {"error": "Care request not found"}

    request, dog_name = row
    if request.owner_id != user_id and request.assigned_sitter_id != user_id:
        logger.warning("User %s denied sitter logs for request %s", user_id, request_id)
        return {"error": "Access denied to this care request"}

    logs_result = await db.execute(
        select(SitterLog)
        .where(SitterLog.request_id == request_id)
        .order_by(SitterLog.created_at.desc())
        .limit(50)
    )
    logs = [
        _row(log, "id", "log_type", "note_text", "media_urls", "created_at")
        for log in logs_result.scalars().all()
    ]
    if not logs:
        return {
            "message": "No activity logs found for this care request yet.",
            "dog_name": dog_name,
        }

    return {
        "logs": logs,
        "count": len(logs),
        "dog_name": dog_name,
        "summary": {
            key: sum(1 for log in logs if log["log_type"] == log_type)
            for log_type, key in SITTER_LOG_SUMMARY_KEYS.items()
        },
    }


async def get_found_dogs_nearby(db: AsyncSession, user_id: uuid.UUID, args: dict) -> dict:
    status = args.get("status") or "active"

    query = select(FoundDog).order_by(FoundDog.created_at.desc()).limit(10)
    if status != "all":
        query = query.where(FoundDog.status == status)

    posts = (await db.execute(query)).scalars().all()
    if not posts:
        return {"message": "No found dog posts in the community right now."}

    found_dogs = []
    for post in posts:
        entry = _row(post, "id", "description", "location_label", "found_at", "status",
                     "created_at", "photo_urls")
        entry["has_photos"] = bool(post.photo_urls)
        found_dogs.append(entry)
    return {"found_dogs": found_dogs, "count": len(found_dogs)}


async def search_found_dogs_by_attributes(db: AsyncSession, user_id: uuid.UUID, args: dict) -> dict:
    """Narrow found-dog posts to a recent window and hand the model a matching policy.

    No visual or textual similarity is computed here; the model judges matches
    against the candidates and the photo it saw earlier.
    """
    try:
        days_back = int(args.get("days_back") or 30)
    except (TypeError, ValueError):
        days_back = 30
    days_back = max(1, min(days_back, SEARCH_MAX_DAYS_BACK))

    criteria = {
        "breed_guess": args.get("breed_guess") or "",
        "color": args.get("color") or "",
        "size": args.get("size") or "",
        "markings": args.get("markings") or None,
        "days_back": days_back,
    }

    since = datetime.now(timezone.utc) - timedelta(days=days_back)
    result = await db.execute(
        select(FoundDog)
        .where(FoundDog.status == "active", FoundDog.created_at >= since)
        .order_by(FoundDog.created_at.desc())
        .limit(SEARCH_MAX_CANDIDATES)
    )
    posts = result.scalars().all()
    if not posts:
        return {
            "message": f"No active found dog posts in the last {days_back} days.",
            "search_criteria": criteria,
        }

    candidates = []
    for post in posts:
        entry = _row(post, "id", "description", "breed_guess", "color", "size", "markings",
                     "location_label", "found_at", "created_at", "photo_urls")
        entry["has_photos"] = bool(post.photo_urls)
        candidates.append(entry)

    return {
        "search_criteria": criteria,
        "candidates": candidates,
        "count": len(candidates),
        "matching_instructions": MATCHING_INSTRUCTIONS,
    }


TOOL_HANDLERS = {
    "get_my_dogs": get_my_dogs,
    "get_dog_details": get_dog_details,
    "get_medication_records": get_medication_records,
    "get_care_requests": get_care_requests,
    "get_lost_alerts": get_lost_alerts,
    "get_sitter_logs": get_sitter_logs,
    "get_found_dogs_nearby": get_found_dogs_nearby,
    "search_found_dogs_by_attributes": search_found_dogs_by_attributes,
}


def parse_arguments(raw: str | None) -> dict:
    """Decode a tool call's JSON argument string, falling back to {}."""
    try:
        args = json.loads(raw or "{}")
    except json.JSONDecodeError as e:
        logger.error("Failed to parse tool arguments %r: %s", raw, e)
        return {}
    return args if isinstance(args, dict) else {}


async def execute_tool(db: AsyncSession, user_id: uuid.UUID, name: str, args: dict) -> dict:
    """Run one tool for user_id and return its result payload."""
    logger.info("Executing tool %s for user %s with args %s", name, user_id, args)
    handler = TOOL_HANDLERS.get(name)
    if handler is None:
        return {"error": f"Unknown tool: {name}"}
    try:
        return await handler(db, user_id, args)
    except SQLAlchemyError as e:
        logger.error("Tool %s failed for user %s: %s", name, user_id, e)
        await db.rollback()
        return {"error": str(e)}
