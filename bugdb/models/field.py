from django.db import models

from ..exceptions import CodeError


class FieldType(models.IntegerChoices):
    UNKNOWN = 0
    FREETEXT = 1
    SINGLE_SELECT = 2
    MULTI_SELECT = 3
    TEXTAREA = 4
    DATETIME = 5


# name, description, in_new_bugmail, buglist, type
DEFAULT_FIELDS = (
    ("bug_id", "Bug #", True, True, FieldType.UNKNOWN),
    ("short_desc", "Summary", True, True, FieldType.UNKNOWN),
    ("product", "Product", True, True, FieldType.SINGLE_SELECT),
    ("version", "Version", True, True, FieldType.UNKNOWN),
    ("rep_platform", "Platform", True, True, FieldType.SINGLE_SELECT),
    ("bug_file_loc", "URL", True, False, FieldType.UNKNOWN),
    ("op_sys", "OS/Version", True, True, FieldType.SINGLE_SELECT),
    ("bug_status", "Status", True, True, FieldType.SINGLE_SELECT),
    ("status_whiteboard", "Status Whiteboard", True, True, FieldType.UNKNOWN),
    ("keywords", "Keywords", True, True, FieldType.UNKNOWN),
    ("resolution", "Resolution", False, True, FieldType.SINGLE_SELECT),
    ("bug_severity", "Severity", True, True, FieldType.SINGLE_SELECT),
    ("priority", "Priority", True, True, FieldType.SINGLE_SELECT),
    ("component", "Component", True, True, FieldType.UNKNOWN),
    ("assigned_to", "AssignedTo", True, True, FieldType.UNKNOWN),
    ("reporter", "ReportedBy", True, True, FieldType.UNKNOWN),
    ("votes", "Votes", False, True, FieldType.UNKNOWN),
    ("qa_contact", "QAContact", True, True, FieldType.UNKNOWN),
    ("cc", "CC", True, False, FieldType.UNKNOWN),
    ("dependson", "Depends on", True, False, FieldType.UNKNOWN),
    ("blocked", "Blocks", True, False, FieldType.UNKNOWN),
    ("attachments.description", "Attachment description", False, False, FieldType.UNKNOWN),
    ("attachments.filename", "Attachment filename", False, False, FieldType.UNKNOWN),
    ("attachments.mimetype", "Attachment mime type", False, False, FieldType.UNKNOWN),
    ("attachments.ispatch", "Attachment is patch", False, False, FieldType.UNKNOWN),
    ("attachments.isobsolete", "Attachment is obsolete", False, False, FieldType.UNKNOWN),
    ("attachments.isprivate", "Attachment is private", False, False, FieldType.UNKNOWN),
    ("attachments.submitter", "Attachment creator", False, False, FieldType.UNKNOWN),
    ("target_milestone", "Target Milestone", False, True, FieldType.UNKNOWN),
    ("creation_ts", "Creation date", True, True, FieldType.UNKNOWN),
    ("delta_ts", "Last changed date", True, True, FieldType.UNKNOWN),
    ("longdesc", "Comment", False, False, FieldType.UNKNOWN),
    ("longdescs.isprivate", "Comment is private", False, False, FieldType.UNKNOWN),
    ("alias", "Alias", False, True, FieldType.UNKNOWN),
    ("everconfirmed", "Ever Confirmed", False, False, FieldType.UNKNOWN),
    ("reporter_accessible", "Reporter Accessible", False, False, FieldType.UNKNOWN),
    ("cclist_accessible", "CC Accessible", False, False, FieldType.UNKNOWN),
    ("bug_group", "Group", True, False, FieldType.UNKNOWN),
    ("estimated_time", "Estimated Hours", True, True, FieldType.UNKNOWN),
    ("remaining_time", "Remaining Hours", False, True, FieldType.UNKNOWN),
    ("deadline", "Deadline", True, True, FieldType.DATETIME),
    ("commenter", "Commenter", False, False, FieldType.UNKNOWN),
    ("flagtypes.name", "Flags", False, True, FieldType.UNKNOWN),
    ("requestees.login_name", "Flag Requestee", False, False, FieldType.UNKNOWN),
    ("setters.login_name", "Flag Setter", False, False, FieldType.UNKNOWN),
    ("work_time", "Hours Worked", False, True, FieldType.UNKNOWN),
    ("percentage_complete", "Percentage Complete", False, True, FieldType.UNKNOWN),
    ("content", "Content", False, False, FieldType.UNKNOWN),
    ("attach_data.thedata", "Attachment data", False, False, FieldType.UNKNOWN),
)


class FieldDefinitionManager(models.Manager):
    def ensure_defaults(self):
        """create the missing standard field definitions"""
        existing = set(self.values_list("name", flat=True))
        self.bulk_create(
            FieldDefinition(
                name=name,
                description=description,
                in_new_bugmail=in_new_bugmail,
                buglist=buglist,
                type=field_type,
                sortkey=sortkey,
            )
            for sortkey, (name, description, in_new_bugmail, buglist, field_type) in enumerate(
                DEFAULT_FIELDS, start=1
            )
            if name not in existing
        )

    def get_by_name(self, name):
        """
        field definition by its name

        the standard definitions are created lazily on the first use
        """
        field = self.filter(name=name).first()
        if field is None:
            self.ensure_defaults()
            field = self.filter(name=name).first()
        if field is None:
            raise CodeError(f"Invalid field name {name}")
        return field

    def description_of(self, name):
        return self.get_by_name(name).description

    def new_bugmail_fields(self):
        self.ensure_defaults()
        return self.filter(in_new_bugmail=True, obsolete=False).order_by("sortkey")


class FieldDefinition(models.Model):
    """definition of a bug field as shown in the mails and the activity log"""

    name = models.CharField(max_length=64, unique=True)
    description = models.TextField()
    type = models.IntegerField(choices=FieldType.choices, default=FieldType.UNKNOWN)
    custom = models.BooleanField(default=False)
    in_new_bugmail = models.BooleanField(default=False)
    buglist = models.BooleanField(default=False)
    obsolete = models.BooleanField(default=False)
    sortkey = models.IntegerField(default=0)

    objects = FieldDefinitionManager()

    class Meta:
        ordering = ["sortkey", "name"]

    def __str__(self):
        return self.name

    @property
    def is_select(self):
        return self.type in (FieldType.SINGLE_SELECT, FieldType.MULTI_SELECT)

    def legal_values(self):
        """legal values of a select field"""
        from apps.workflows.workflow import WorkflowFramework

        from .bug import SELECT_FIELD_CHOICES

        if not self.is_select:
            return []
        if self.name == "bug_status":
            return [status.name for status in WorkflowFramework().statuses]
        if self.name == "product":
            from .product import Product

            return list(Product.objects.values_list("name", flat=True))
        return list(SELECT_FIELD_CHOICES[self.name].values)
