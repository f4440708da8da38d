"""
bugdb constants

these may eventually be refactored into config/settings

"""

BUGDB_API_VERSION: str = "v1"

# the default datetime format
DATETIME_FMT = "%Y-%m-%dT%H:%M:%SZ"
DATE_FMT = "%Y-%m-%d"

# Relationships a user may have to a bug
REL_ASSIGNEE = 0
REL_QA = 1
REL_REPORTER = 2
REL_CC = 3
REL_VOTER = 4
REL_GLOBAL_WATCHER = 5
# used only for the global events
REL_ANY = 100

RELATIONSHIPS = (
    REL_ASSIGNEE,
    REL_QA,
    REL_REPORTER,
    REL_CC,
    REL_VOTER,
    REL_GLOBAL_WATCHER,
)

REL_NAMES = {
    REL_ASSIGNEE: "AssignedTo",
    REL_REPORTER: "Reporter",
    REL_QA: "QAcontact",
    REL_CC: "CC",
    REL_VOTER: "Voter",
    REL_GLOBAL_WATCHER: "GlobalWatcher",
}

# Positive events, any one of them being matched sends the mail
EVT_OTHER = 0
EVT_ADDED_REMOVED = 1
EVT_COMMENT = 2
EVT_ATTACHMENT = 3
EVT_ATTACHMENT_DATA = 4
EVT_PROJ_MANAGEMENT = 5
EVT_OPENED_CLOSED = 6
EVT_KEYWORD = 7
EVT_CC = 8
EVT_DEPEND_BLOCK = 9
EVT_BUG_CREATED = 10

POS_EVENTS = (
    EVT_OTHER,
    EVT_ADDED_REMOVED,
    EVT_COMMENT,
    EVT_ATTACHMENT,
    EVT_ATTACHMENT_DATA,
    EVT_PROJ_MANAGEMENT,
    EVT_OPENED_CLOSED,
    EVT_KEYWORD,
    EVT_CC,
    EVT_DEPEND_BLOCK,
    EVT_BUG_CREATED,
)

# Negative events, any one of them being matched vetoes the mail
EVT_UNCONFIRMED = 50
EVT_CHANGED_BY_ME = 51

NEG_EVENTS = (EVT_UNCONFIRMED, EVT_CHANGED_BY_ME)

# Global events, not bound to any relationship
EVT_FLAG_REQUESTED = 100
EVT_REQUESTED_FLAG = 101

GLOBAL_EVENTS = (EVT_FLAG_REQUESTED, EVT_REQUESTED_FLAG)

# field description -> event
FIELD_EVENTS = {
    "Resolution": EVT_OPENED_CLOSED,
    "Keywords": EVT_KEYWORD,
    "CC": EVT_CC,
    "Severity": EVT_PROJ_MANAGEMENT,
    "Priority": EVT_PROJ_MANAGEMENT,
    "Status": EVT_PROJ_MANAGEMENT,
    "Target Milestone": EVT_PROJ_MANAGEMENT,
    "Attachment description": EVT_ATTACHMENT_DATA,
    "Attachment mime type": EVT_ATTACHMENT_DATA,
    "Attachment is patch": EVT_ATTACHMENT_DATA,
    "Depends on": EVT_DEPEND_BLOCK,
    "Blocks": EVT_DEPEND_BLOCK,
}

# recipient bits in the bugmail relationship map
BIT_DIRECT = 1
BIT_WATCHING = 2

# Group control map values
CONTROLMAPNA = 0
CONTROLMAPSHOWN = 1
CONTROLMAPDEFAULT = 2
CONTROLMAPMANDATORY = 3

# Group to group grant types
GROUP_MEMBERSHIP = 0
GROUP_BLESS = 1
GROUP_VISIBLE = 2

# User to group grant types
GRANT_DIRECT = 0
GRANT_REGEXP = 2

# Comment types
CMT_NORMAL = 0
CMT_DUPE_OF = 1
CMT_HAS_DUPE = 2
CMT_POPULAR_VOTES = 3
CMT_MOVED_TO = 4
CMT_ATTACHMENT_CREATED = 5
CMT_ATTACHMENT_UPDATED = 6

# Length limits
MAX_COMMENT_LENGTH = 65535
MAX_FREETEXT_LENGTH = 255
MAX_ALIAS_LENGTH = 20
MAX_LOGIN_LENGTH = 255
USER_PASSWORD_MIN_LENGTH = 6

# Login lockout
MAX_LOGIN_ATTEMPTS = 5
# minutes
LOGIN_LOCKOUT_INTERVAL = 30

# group_control_map columns which grant a privilege inside a single product
PER_PRODUCT_PRIVILEGES = ("editcomponents", "editbugs", "canconfirm")

DEFAULT_MILESTONE = "---"

# fields only visible to and editable by time trackers
TIMETRACKING_FIELDS = ("estimated_time", "remaining_time", "work_time", "deadline")

# password value which disables the password login
DISABLED_PASSWORD = "*"

# characters which are never allowed in a login name
LOGIN_FORBIDDEN_CHARS = '\\()<>&,;:"[] \t\r\n'

# group which is allowed to administer users
ADMIN_GROUP = "admin"
EDITUSERS_GROUP = "editusers"
EDITBUGS_GROUP = "editbugs"
CANCONFIRM_GROUP = "canconfirm"

# account creation tokens expire after three days
ACCOUNT_TOKEN_MAX_AGE = 3 * 24 * 60 * 60
ACCOUNT_TOKEN_SALT = "bugdb.account"
