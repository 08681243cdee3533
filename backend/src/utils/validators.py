"""
Input validation utilities for API request data.
Ensures data integrity and security before processing.
"""

import re
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from backend.src.models.enums import Category, Priority, TaskStatus, WRITABLE_STATUSES, values
from backend.src.utils.errors import ValidationError


# Allowed values for enum-like fields
VALID_CATEGORIES = values(Category)
VALID_PRIORITIES = values(Priority)

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 2000
COMMENT_MAX_LENGTH = 1000

# Fields a manager may set through create/update
TASK_FIELDS = {
    'title', 'description', 'category', 'tags', 'estimated_time', 'actual_time',
    'deadline', 'assigned_to', 'priority', 'subtasks', 'attachments',
    'is_archived', 'department_id',
}


def parse_datetime(value: Any, field: str) -> Optional[datetime]:
    """
    Parse an ISO 8601 value into a naive UTC datetime.

    Accepts datetime objects, ISO strings (with or without 'Z') and None.
    """
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError(f"Invalid {field} format. Use ISO 8601 (e.g., 2024-12-31T23:59:59)")
    else:
        raise ValidationError(f"Invalid {field} format. Use ISO 8601 (e.g., 2024-12-31T23:59:59)")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _validate_minutes(value: Any, field: str, errors: List[str]) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        errors.append(f"{field} must be a number of minutes")
        return None
    if value < 0:
        errors.append(f"{field} cannot be negative")
    return value


def _validate_user_id(value: Any, field: str, errors: List[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        user_id = int(value)
    except (ValueError, TypeError):
        errors.append(f"{field} must be a valid user ID (integer)")
        return None
    if user_id <= 0:
        errors.append(f"{field} must be a positive integer")
    return user_id


def normalize_tags(tags: Any) -> List[str]:
    """Strip tags and drop blanks and duplicates, keeping first-seen order"""
    if not isinstance(tags, (list, tuple)):
        raise ValidationError("tags must be a list of strings")
    seen = []
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError("tags must be a list of strings")
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def validate_files(files: Any, field: str = 'submitted_files') -> List[Dict[str, Any]]:
    """
    Validate a list of {name, url[, uploaded_at]} entries.

    Returns entries with uploaded_at serialized as an ISO string so they can be
    stored in a JSON column.
    """
    if files is None:
        return []
    if not isinstance(files, (list, tuple)):
        raise ValidationError(f"{field} must be a list")
    cleaned = []
    for entry in files:
        if not isinstance(entry, dict) or not entry.get('name') or not entry.get('url'):
            raise ValidationError(f"Each entry in {field} needs a name and a url")
        uploaded_at = parse_datetime(entry.get('uploaded_at'), 'uploaded_at')
        cleaned.append({
            'name': str(entry['name']).strip(),
            'url': str(entry['url']).strip(),
            'uploaded_at': uploaded_at.isoformat() if uploaded_at else None,
        })
    return cleaned


def validate_subtasks(subtasks: Any) -> List[Dict[str, Any]]:
    if not isinstance(subtasks, (list, tuple)):
        raise ValidationError("subtasks must be a list")
    cleaned = []
    for entry in subtasks:
        if not isinstance(entry, dict) or not str(entry.get('title', '')).strip():
            raise ValidationError("Each subtask needs a title")
        cleaned.append({
            'title': str(entry['title']).strip(),
            'completed': bool(entry.get('completed', False)),
        })
    return cleaned


def validate_status(status: Any) -> str:
    """
    Validate an explicit status write.

    Overdue is derived from the deadline and can never be written.
    """
    if not isinstance(status, str) or not status.strip():
        raise ValidationError("Status is required")
    status = status.strip()
    if status == TaskStatus.OVERDUE.value:
        raise ValidationError("Overdue status is derived from the deadline and cannot be set directly")
    if status not in WRITABLE_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(sorted(WRITABLE_STATUSES))}")
    return status


def validate_task_data(data: Dict[str, Any], required_fields: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Validate task creation/update data.

    Args:
        data: Dictionary containing task fields from request
        required_fields: List of required field names (None for updates)

    Returns:
        dict: Validated and sanitized copy of the data

    Raises:
        ValidationError: If validation fails with descriptive error message
    """
    errors = []
    data = dict(data)

    # Check required fields for creation
    if required_fields:
        for field in required_fields:
            if field not in data or data[field] in (None, ''):
                errors.append(f"Field '{field}' is required")

    unknown = set(data) - TASK_FIELDS
    if unknown:
        errors.append(f"Fields cannot be set here: {', '.join(sorted(unknown))}")

    # Validate title (if present)
    if 'title' in data:
        title = data['title'].strip() if isinstance(data['title'], str) else ''
        if not title:
            errors.append("Title cannot be empty")
        elif len(title) > TITLE_MAX_LENGTH:
            errors.append(f"Title cannot exceed {TITLE_MAX_LENGTH} characters")
        data['title'] = title

    # Validate description (if present)
    if data.get('description') is not None:
        description = str(data['description']).strip()
        if len(description) > DESCRIPTION_MAX_LENGTH:
            errors.append(f"Description cannot exceed {DESCRIPTION_MAX_LENGTH} characters")
        data['description'] = description

    if data.get('category') is not None:
        if data['category'] not in VALID_CATEGORIES:
            errors.append(f"Category must be one of: {', '.join(sorted(VALID_CATEGORIES))}")

    if data.get('priority') is not None:
        if data['priority'] not in VALID_PRIORITIES:
            errors.append(f"Priority must be one of: {', '.join(sorted(VALID_PRIORITIES))}")

    if 'estimated_time' in data:
        data['estimated_time'] = _validate_minutes(data['estimated_time'], 'estimated_time', errors)
    if 'actual_time' in data:
        data['actual_time'] = _validate_minutes(data['actual_time'], 'actual_time', errors)

    if 'assigned_to' in data:
        data['assigned_to'] = _validate_user_id(data['assigned_to'], 'assigned_to', errors)
    if 'department_id' in data and data['department_id'] is not None:
        try:
            data['department_id'] = int(data['department_id'])
        except (ValueError, TypeError):
            errors.append("department_id must be an integer")

    if 'is_archived' in data and not isinstance(data['is_archived'], bool):
        errors.append("is_archived must be a boolean")

    # Collection fields raise on their own; gather them into the same report
    for field, validator in (('deadline', lambda v: parse_datetime(v, 'deadline')),
                             ('tags', normalize_tags),
                             ('subtasks', validate_subtasks),
                             ('attachments', lambda v: validate_files(v, 'attachments'))):
        if field in data:
            try:
                data[field] = validator(data[field])
            except ValidationError as e:
                errors.append(e.message)

    # If any validation errors, raise exception with all messages
    if errors:
        raise ValidationError('; '.join(errors))

    return data


def validate_comment(text: Any) -> str:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("Comment text is required")
    text = text.strip()
    if len(text) > COMMENT_MAX_LENGTH:
        raise ValidationError(f"Comment cannot exceed {COMMENT_MAX_LENGTH} characters")
    return text


def validate_email(email: str) -> bool:
    """
    Validate email format using regex.

    Args:
        email: Email address to validate

    Returns:
        bool: True if valid email format
    """
    # Basic email regex pattern
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return re.match(pattern, email) is not None


def _name_errors(name: Any) -> List[str]:
    if not isinstance(name, str):
        return ["Name must be a string"]
    name = name.strip()
    if len(name) < 2:
        return ["Name must be at least 2 characters"]
    if len(name) > 80:
        return ["Name cannot exceed 80 characters"]
    return []


def _email_errors(email: Any) -> List[str]:
    if not isinstance(email, str):
        return ["Email must be a string"]
    if not validate_email(email.strip().lower()):
        return ["Invalid email format"]
    return []


def password_errors(password: Any) -> List[str]:
    """Problems with a candidate password (empty list when acceptable)"""
    if not isinstance(password, str):
        return ["Password must be a string"]
    if len(password) < 8:
        return ["Password must be at least 8 characters"]
    if len(password) > 128:
        return ["Password cannot exceed 128 characters"]
    return []


def validate_user_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate user registration data.

    Args:
        data: Dictionary containing name, email, password and optional department_id

    Returns:
        dict: Validated and sanitized data

    Raises:
        ValidationError: If validation fails
    """
    errors = []
    data = dict(data)

    for field in ('name', 'email', 'password'):
        if data.get(field) is None or data.get(field) == '':
            errors.append(f"Field '{field}' is required")

    if data.get('name') not in (None, ''):
        errors.extend(_name_errors(data['name']))
        if isinstance(data['name'], str):
            data['name'] = data['name'].strip()

    if data.get('email') not in (None, ''):
        errors.extend(_email_errors(data['email']))
        if isinstance(data['email'], str):
            data['email'] = data['email'].strip().lower()

    # Don't sanitize password - preserve exactly as entered
    if data.get('password') not in (None, ''):
        errors.extend(password_errors(data['password']))

    if data.get('department_id') is not None:
        try:
            data['department_id'] = int(data['department_id'])
        except (ValueError, TypeError):
            errors.append("department_id must be an integer")

    if errors:
        raise ValidationError('; '.join(errors))

    return data


def validate_profile_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate a profile edit. Only name and email can change; both are optional.

    Raises:
        ValidationError: If validation fails or nothing editable was supplied
    """
    errors = []
    updates = {}

    if 'name' in data:
        errors.extend(_name_errors(data['name']))
        if isinstance(data['name'], str):
            updates['name'] = data['name'].strip()
    if 'email' in data:
        errors.extend(_email_errors(data['email']))
        if isinstance(data['email'], str):
            updates['email'] = data['email'].strip().lower()

    if errors:
        raise ValidationError('; '.join(errors))
    if not updates:
        raise ValidationError('Nothing to update; provide name and/or email')
    return updates
