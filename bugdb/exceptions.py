"""
    bugdb exceptions

    every exception reported back to the API client carries an http_code
    class attribute and an error tag naming the failure
"""
from rest_framework import status


class BugdbException(Exception):
    """Base Exception class for bugdb specific exceptions"""

    error = "bugdb_error"


class InvalidTestEnvironmentException(BugdbException):
    """Invalid Test Environment Exception"""


class CodeError(BugdbException):
    """Internal inconsistency which is not the user's fault"""

    http_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "code_error"


class DataInconsistencyException(BugdbException):
    """Data Inconsistency Exception"""

    http_code = status.HTTP_409_CONFLICT
    error = "data_inconsistency"


class UserError(BugdbException):
    """Base class for errors caused by the user input"""

    http_code = status.HTTP_400_BAD_REQUEST
    error = "user_error"


class AccessDenied(UserError):
    """Base class for authorization failures"""

    http_code = status.HTTP_403_FORBIDDEN
    error = "access_denied"


class ObjectNotFound(UserError):
    """Requested object does not exist"""

    http_code = status.HTTP_404_NOT_FOUND
    error = "object_does_not_exist"


# bug access and field changes


class BugAccessDenied(AccessDenied):
    """The user is not allowed to see the bug"""

    error = "bug_access_denied"


class IllegalChange(AccessDenied):
    """
    The user is not allowed to change the field

    privs holds the privilege level which would be needed
    """

    error = "illegal_change"

    def __init__(self, message, field=None, privs=None):
        super().__init__(message)
        self.field = field
        self.privs = privs


class IllegalFieldValue(UserError):
    """Value is not legal for the select field"""

    error = "illegal_field_value"


class IllegalDate(UserError):
    """Date is not in the YYYY-MM-DD format"""

    error = "illegal_date"


class IllegalTimeFormat(UserError):
    """Time tracking value is not a valid number"""

    error = "need_numeric_value"


class RequireSummary(UserError):
    """Summary must not be empty"""

    error = "require_summary"


class FreetextTooLong(UserError):
    """Free text value is too long"""

    error = "freetext_too_long"


class CommentTooLong(UserError):
    """Comment is too long"""

    error = "comment_too_long"


class CommentRequired(UserError):
    """The change requires a comment"""

    error = "comment_required"


class UnknownKeyword(UserError):
    """Keyword does not exist"""

    error = "unknown_keyword"


class AliasError(UserError):
    """Alias is invalid"""

    error = "alias_invalid"


class AliasInUse(AliasError):
    """Alias is already used by another bug"""

    error = "alias_in_use"


class ProductEditDenied(AccessDenied):
    """Strict isolation forbids the user to be involved in the bug"""

    error = "invalid_user_group"


# status and resolution


class IllegalStatusTransition(UserError):
    """The status may not be changed to the target status"""

    error = "illegal_bug_status_transition"


class MilestoneRequired(UserError):
    """A target milestone is required to accept the bug"""

    error = "milestone_required"


class MissingResolution(UserError):
    """Closed bug requires a resolution"""

    error = "missing_resolution"


class ResolutionNotAllowed(UserError):
    """Open bug may not have a resolution"""

    error = "resolution_not_allowed"


class ResolutionCantClear(UserError):
    """Resolution of a closed bug cannot be cleared"""

    error = "resolution_cant_clear"


class NoManualMoved(UserError):
    """The MOVED resolution cannot be set manually"""

    error = "no_manual_moved"


class StillUnresolvedBugs(UserError):
    """The bug still depends on open bugs"""

    error = "still_unresolved_bugs"


class DupeIdRequired(UserError):
    """Duplicate resolution requires the duplicate of bug"""

    error = "dupe_id_required"


class DupeOfSelf(UserError):
    """A bug cannot be a duplicate of itself"""

    error = "dupe_of_self_disallowed"


class DupeLoopDetected(UserError):
    """Marking as duplicate would create a loop of duplicates"""

    error = "dupe_loop_detected"


class DependencyLoop(UserError):
    """Dependencies would form a loop"""

    error = "dependency_loop_multi"


class DependencyLoopSingle(DependencyLoop):
    """Bug would depend on itself"""

    error = "dependency_loop_single"


# groups and products


class GroupInvalidRestriction(UserError):
    """Group is not valid for the product of the bug"""

    error = "group_invalid_restriction"


class GroupChangeDenied(AccessDenied):
    """User is not allowed to change the group"""

    error = "group_change_denied"


class GroupInvalidRemoval(UserError):
    """Mandatory group cannot be removed"""

    error = "group_invalid_removal"


class ProductAccessDenied(AccessDenied):
    """User cannot enter bugs into the product"""

    error = "entry_access_denied"


class ProductDisabled(UserError):
    """Product is closed for new bugs"""

    error = "product_disabled"


class MissingComponent(UserError):
    """Product has no component"""

    error = "missing_component"


class MissingVersion(UserError):
    """Product has no version"""

    error = "missing_version"


class NoProducts(UserError):
    """There is no product the user can enter bugs into"""

    error = "no_products"


# flags


class FlagStatusInvalid(UserError):
    """Flag status is not valid"""

    error = "flag_status_invalid"


class FlagUpdateDenied(AccessDenied):
    """User is not allowed to change the flag"""

    error = "flag_update_denied"


class FlagRequesteeUnauthorized(UserError):
    """Requestee cannot see the bug or cannot set the flag"""

    error = "flag_requestee_unauthorized"


class FlagRequesteeDisabled(UserError):
    """Flag type does not allow specific requestees"""

    error = "flag_requestee_disabled"


class FlagTypeInvalid(UserError):
    """Flag type is inactive or not applicable to the target"""

    error = "flag_type_invalid"


class FlagTypeNotMultiplicable(UserError):
    """Flag type allows only one flag per target"""

    error = "flag_type_not_multiplicable"


# votes


class VotesDisabled(UserError):
    """Voting is not enabled for the product"""

    error = "votes_disabled"


class TooManyVotes(UserError):
    """User would exceed the vote limit"""

    error = "too_many_votes"


# users and accounts


class AuthFailure(AccessDenied):
    """Invalid login or password"""

    http_code = status.HTTP_401_UNAUTHORIZED
    error = "invalid_username_or_password"


class AccountLockedOut(AccessDenied):
    """Too many failed logins from the address"""

    error = "account_locked"


class AccountDisabled(AccessDenied):
    """Account was disabled by an administrator"""

    error = "account_disabled"


class AccountCreationDisabled(AccessDenied):
    """Self registration is disabled"""

    error = "account_creation_disabled"


class AccountCreationRestricted(AccessDenied):
    """Self registration is not allowed for the address"""

    error = "account_creation_restricted"


class AccountExists(UserError):
    """Login name is already taken"""

    error = "account_exists"


class IllegalEmailAddress(UserError):
    """Login name is not a valid email address"""

    error = "illegal_email_address"


class PasswordTooShort(UserError):
    """Password is shorter than the minimum length"""

    error = "password_too_short"


class PasswordsDontMatch(UserError):
    """Password confirmation differs"""

    error = "passwords_dont_match"


class UserAccessDenied(AccessDenied):
    """User lookup is not allowed"""

    error = "user_access_denied"


class RequiredFieldMissing(UserError):
    """Field required for the change is missing"""

    error = "param_required"


class NotInsider(AccessDenied):
    """Only the insiders may handle the private comments"""

    error = "user_not_insider"


class InvalidComment(UserError):
    """Comment does not belong to the bug"""

    error = "comment_invalid_isprivate"


class LoginRequired(AccessDenied):
    """Operation is not available to the anonymous users"""

    http_code = status.HTTP_401_UNAUTHORIZED
    error = "login_required"


class InvalidToken(UserError):
    """Account creation token is invalid or expired"""

    error = "token_does_not_exist"
