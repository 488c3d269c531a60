"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the approval engine (HTTP handlers, batch jobs, other services)
must react to a refused transition precisely: an unauthorized approver gets
a different answer than an approver who arrived after the instance ended.
Every error therefore has:

  1. A TYPED exception class (catch by type, not message)
  2. A CODE class attribute (machine-readable, API-safe)
  3. Structured DATA attributes (category, uuid, level index, ...)

Example:
    try:
        engine.approve(category, uuid, role_id=5, user_id=9)
    except NoPermissionOrEndedError as e:
        api_response(code=e.code, uuid=e.uuid)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- MachineDefinitionError        (raised only while building a machine)
    |   +-- EventsEmptyError
    |   +-- EventNameEmptyError
    |   +-- EventEndPointNotUniqueError
    |   +-- InvalidLevelIdsError
    |
    +-- MachineError
    |   +-- MachineNotFoundError
    |   +-- MachineAlreadyExistsError
    |   +-- MachineInUseError
    |
    +-- TransitionError               (raised only while acting on an instance)
    |   +-- RepeatSubmitError
    |   +-- IllegalStatusError
    |   +-- NoPermissionApproveError
    |   +-- NoPermissionRefuseError
    |   +-- NoPermissionOrEndedError
    |   +-- NoEditLogDetailPermissionError
    |   +-- OnlySubmitterCancelError
    |   +-- StartedCannotCancelError
    |   +-- OpinionTooLongError
    |   +-- UnknownActionError
    |
    +-- ConcurrencyError
    |   +-- LogAppendConflictError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- DetailProviderMissingError

Transition errors are never retried by the engine. Retry policy, if any,
belongs to the caller. Storage and hook errors are not wrapped.
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Machine definition exceptions


class MachineDefinitionError(ApprovalKernelError):
    """Base exception for invalid machine definitions."""

    code: str = "MACHINE_DEFINITION_ERROR"


class EventsEmptyError(MachineDefinitionError):
    """The machine definition has no approval levels."""

    code: str = "EVENTS_EMPTY"

    def __init__(self, machine_name: str = ""):
        self.machine_name = machine_name
        super().__init__("events is empty")


class EventNameEmptyError(MachineDefinitionError):
    """A level in the machine definition has a blank name."""

    code: str = "EVENT_NAME_EMPTY"

    def __init__(self, level_index: int):
        self.level_index = level_index
        super().__init__(f"event name is empty (level {level_index})")


class EventEndPointNotUniqueError(MachineDefinitionError):
    """The definition implies zero or more than one terminal level."""

    code: str = "EVENT_END_POINT_NOT_UNIQUE"

    def __init__(self, end_indexes: list[int]):
        self.end_indexes = end_indexes
        super().__init__(
            "event end position is not unique or has no end position: "
            f"{end_indexes}"
        )


class InvalidLevelIdsError(MachineDefinitionError):
    """A role/user id list contains a token that is not an integer id."""

    code: str = "INVALID_LEVEL_IDS"

    def __init__(self, level_name: str, field: str, token: str):
        self.level_name = level_name
        self.field = field
        self.token = token
        super().__init__(
            f"Invalid {field} id '{token}' in level '{level_name}'"
        )


# Machine registry exceptions


class MachineError(ApprovalKernelError):
    """Base exception for machine registry errors."""

    code: str = "MACHINE_ERROR"


class MachineNotFoundError(MachineError):
    """No machine is registered for the category."""

    code: str = "MACHINE_NOT_FOUND"

    def __init__(self, category: int):
        self.category = category
        super().__init__(f"Machine not found for category {category}")


class MachineAlreadyExistsError(MachineError):
    """A machine is already registered for the category."""

    code: str = "MACHINE_ALREADY_EXISTS"

    def __init__(self, category: int):
        self.category = category
        super().__init__(f"Machine already exists for category {category}")


class MachineInUseError(MachineError):
    """The machine is referenced by approval logs and cannot change."""

    code: str = "MACHINE_IN_USE"

    def __init__(self, category: int):
        self.category = category
        super().__init__(
            f"Machine for category {category} is referenced by approval "
            "logs and is immutable"
        )


# Transition exceptions


class TransitionError(ApprovalKernelError):
    """Base exception for a refused instance transition."""

    code: str = "TRANSITION_ERROR"
    message: str = "transition refused"

    def __init__(self, category: int, uuid: str):
        self.category = category
        self.uuid = uuid
        super().__init__(f"{self.message}: {category}/{uuid}")


class RepeatSubmitError(TransitionError):
    """An active (non-terminal) approval chain already exists."""

    code: str = "REPEAT_SUBMIT"
    message = "approval record already exists"


class IllegalStatusError(TransitionError):
    """The instance is not in a status that allows the action."""

    code: str = "STATUS"
    message = "illegal approval status"


class NoPermissionApproveError(TransitionError):
    """The actor is not authorized to approve the current level."""

    code: str = "NO_PERMISSION_APPROVE"
    message = "no permission to pass the approval"


class NoPermissionRefuseError(TransitionError):
    """The actor is not authorized to refuse at the current level."""

    code: str = "NO_PERMISSION_REFUSE"
    message = "no permission to refuse approval"


class NoPermissionOrEndedError(TransitionError):
    """The instance is not awaiting the requested level."""

    code: str = "NO_PERMISSION_OR_ENDED"
    message = "no permission to approve or approval ended"


class NoEditLogDetailPermissionError(TransitionError):
    """The actor may not edit (some of) the requested field keys."""

    code: str = "NO_EDIT_LOG_DETAIL_PERMISSION"
    message = "no permission to edit log detail"

    def __init__(self, category: int, uuid: str, fields: tuple[str, ...] = ()):
        self.fields = fields
        super().__init__(category, uuid)


class OnlySubmitterCancelError(TransitionError):
    """Cancel was attempted by someone other than the submitter."""

    code: str = "ONLY_SUBMITTER_CANCEL"
    message = "only the submitter can cancel"


class StartedCannotCancelError(TransitionError):
    """Cancel was attempted after the approval process started."""

    code: str = "STARTED_CANNOT_CANCEL"
    message = "the process is already in progress and cannot be cancelled halfway"


class OpinionTooLongError(TransitionError):
    """The approval opinion exceeds the configured maximum length."""

    code: str = "OPINION_TOO_LONG"
    message = "approval opinion is too long"

    def __init__(self, category: int, uuid: str, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(category, uuid)


class UnknownActionError(TransitionError):
    """A wire payload named an action the engine does not dispatch."""

    code: str = "UNKNOWN_ACTION"
    message = "unknown approval action"

    def __init__(self, category: int, uuid: str, action: str):
        self.action = action
        super().__init__(category, uuid)


# Concurrency exceptions


class ConcurrencyError(ApprovalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class LogAppendConflictError(ConcurrencyError):
    """The expected sequence is stale: another writer appended first."""

    code: str = "LOG_APPEND_CONFLICT"

    def __init__(
        self,
        category: int,
        uuid: str,
        expected_sequence: int,
        actual_sequence: int | None = None,
    ):
        self.category = category
        self.uuid = uuid
        self.expected_sequence = expected_sequence
        self.actual_sequence = actual_sequence
        super().__init__(
            f"Log append conflict on {category}/{uuid}: expected sequence "
            f"{expected_sequence}, found {actual_sequence}"
        )


# Immutability exceptions


class ImmutabilityError(ApprovalKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only approval log row."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


class DetailProviderMissingError(ApprovalKernelError):
    """A submitter-detail operation was called without a DetailProvider."""

    code: str = "DETAIL_PROVIDER_MISSING"

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            f"{operation} requires a DetailProvider to be configured"
        )
