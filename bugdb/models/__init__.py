from .field import FieldDefinition, FieldType
from .group import Group, GroupControlMap, GroupGroupMap, UserGroupMap
from .product import Component, Milestone, Product, Version
from .profile import EmailSetting, LoginFailure, Profile, Watch

__all__ = (
    "Attachment",
    "Bug",
    "BugActivity",
    "Comment",
    "Component",
    "Dependency",
    "Duplicate",
    "EmailSetting",
    "FieldDefinition",
    "FieldType",
    "Flag",
    "FlagExclusion",
    "FlagInclusion",
    "FlagType",
    "Group",
    "GroupControlMap",
    "GroupGroupMap",
    "Keyword",
    "LoginFailure",
    "Milestone",
    "OpSys",
    "Platform",
    "Priority",
    "Product",
    "Profile",
    "Resolution",
    "Severity",
    "UserGroupMap",
    "Version",
    "Vote",
    "Watch",
)

from .bug import (
    Attachment,
    Bug,
    BugActivity,
    Comment,
    Dependency,
    Duplicate,
    Keyword,
    OpSys,
    Platform,
    Priority,
    Resolution,
    Severity,
    Vote,
)
from .flag import Flag, FlagExclusion, FlagInclusion, FlagType
