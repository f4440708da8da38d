import base64

import pytest
from rest_framework import status

from bugdb.models import Attachment, Bug, Comment, Flag, FlagType
from bugdb.tests.factories import (
    AttachmentFactory,
    BugFactory,
    CommentFactory,
    FlagTypeFactory,
    GroupFactory,
    ProductFactory,
    ProfileFactory,
)

pytestmark = pytest.mark.unit


def bug_params(**kwargs):
    params = {
        "product": "TestProduct",
        "component": "TestComponent",
        "version": "unspecified",
        "short_desc": "crash on start",
        "comment": "It crashes.",
    }
    params.update(kwargs)
    return params


class TestEndpointsService:
    def test_healthy(self, client, test_scheme_host):
        response = client.get(f"{test_scheme_host}/healthy")
        assert response.status_code == status.HTTP_200_OK

    def test_whoami(self, auth_client, test_scheme_host, test_user):
        response = auth_client().get(f"{test_scheme_host}/whoami")
        assert response.status_code == status.HTTP_200_OK
        assert response.data["name"] == "tester@example.com"
        assert response.data["real_name"] == "Tester"
        assert response.data["id"] == test_user.pk

    def test_whoami_anonymous(self, client, test_scheme_host):
        response = client.get(f"{test_scheme_host}/whoami")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_schema(self, client, test_api_uri):
        response = client.get(f"{test_api_uri}/schema/")
        assert response.status_code == status.HTTP_200_OK


class TestEndpointsBugs:
    def test_list(self, client, test_api_uri, product):
        BugFactory(product=product)
        BugFactory(product=product)
        response = client.get(f"{test_api_uri}/bugs")
        assert response.status_code == status.HTTP_200_OK
        assert response.data["count"] == 2

    def test_list_hides_invisible(self, auth_client, test_api_uri, product):
        visible = BugFactory(product=product)
        hidden = BugFactory(product=product)
        hidden.groups.add(GroupFactory(name="secret"))

        response = auth_client().get(f"{test_api_uri}/bugs")
        assert [bug["id"] for bug in response.data["results"]] == [visible.pk]

    def test_list_filter(self, client, test_api_uri, product):
        BugFactory(product=product, bug_status="NEW")
        closed = BugFactory(product=product, bug_status="RESOLVED", resolution="FIXED")

        response = client.get(f"{test_api_uri}/bugs?bug_status=RESOLVED")
        assert [bug["id"] for bug in response.data["results"]] == [closed.pk]

        response = client.get(f"{test_api_uri}/bugs?is_open=false")
        assert [bug["id"] for bug in response.data["results"]] == [closed.pk]

    def test_retrieve(self, client, test_api_uri, product):
        bug = BugFactory(product=product, short_desc="it does not work")
        response = client.get(f"{test_api_uri}/bugs/{bug.pk}")
        assert response.status_code == status.HTTP_200_OK
        assert response.data["short_desc"] == "it does not work"
        assert response.data["product"] == "TestProduct"
        assert response.data["is_open"]
        # time tracking is for the timetrackers only
        assert "estimated_time" not in response.data

    def test_retrieve_by_alias(self, client, test_api_uri, product):
        bug = BugFactory(product=product, alias="the-crash")
        response = client.get(f"{test_api_uri}/bugs/the-crash")
        assert response.data["id"] == bug.pk

    def test_retrieve_timetracker(self, auth_client, test_api_uri, product, timetracker):
        bug = BugFactory(product=product)
        response = auth_client(timetracker).get(f"{test_api_uri}/bugs/{bug.pk}")
        assert "estimated_time" in response.data
        assert "actual_time" in response.data

    def test_retrieve_missing(self, client, test_api_uri):
        response = client.get(f"{test_api_uri}/bugs/12345")
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error"] == "object_does_not_exist"

    def test_retrieve_denied(self, client, test_api_uri, product):
        bug = BugFactory(product=product)
        bug.groups.add(GroupFactory(name="secret"))
        response = client.get(f"{test_api_uri}/bugs/{bug.pk}")
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["error"] == "bug_access_denied"

    def test_create(
        self,
        auth_client,
        test_api_uri,
        product,
        editbugs_user,
        outbox,
        django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=True):
            response = auth_client(editbugs_user).post(
                f"{test_api_uri}/bugs", bug_params(), format="json"
            )
        assert response.status_code == status.HTTP_201_CREATED
        bug = Bug.objects.get(pk=response.data["id"])
        assert response["Location"] == f"/bugdb/api/v1/bugs/{bug.pk}"
        assert bug.reporter == editbugs_user
        assert bug.bug_status == "NEW"
        assert bug.assigned_to.login == "owner@example.com"
        assert bug.comments().get().thetext == "It crashes."

        mails = [message for message in outbox if message.to == ["owner@example.com"]]
        assert len(mails) == 1
        assert mails[0].subject == f"[Bug {bug.pk}] New: crash on start"

    def test_create_unconfirmed(self, auth_client, test_api_uri, product):
        response = auth_client().post(
            f"{test_api_uri}/bugs", bug_params(), format="json"
        )
        assert response.status_code == status.HTTP_201_CREATED
        bug = Bug.objects.get(pk=response.data["id"])
        assert bug.bug_status == "UNCONFIRMED"
        assert not bug.everconfirmed

    def test_create_invalid(self, auth_client, test_api_uri, product):
        response = auth_client().post(
            f"{test_api_uri}/bugs", bug_params(short_desc=""), format="json"
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error"] == "require_summary"
        assert not Bug.objects.exists()

    def test_create_anonymous(self, client, test_api_uri, product):
        response = client.post(f"{test_api_uri}/bugs", bug_params(), format="json")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_update(
        self,
        auth_client,
        test_api_uri,
        product,
        test_user,
        outbox,
        django_capture_on_commit_callbacks,
    ):
        bug = BugFactory(product=product, reporter=test_user)
        client = auth_client()
        read = client.get(f"{test_api_uri}/bugs/{bug.pk}")

        with django_capture_on_commit_callbacks(execute=True):
            response = client.put(
                f"{test_api_uri}/bugs/{bug.pk}",
                {
                    "delta_ts": read.data["delta_ts"],
                    "short_desc": "new summary",
                    "comment": {"body": "Renamed."},
                },
                format="json",
            )
        assert response.status_code == status.HTTP_200_OK
        assert response.data["changes"]["short_desc"] == {
            "removed": read.data["short_desc"],
            "added": "new summary",
        }
        bug.refresh_from_db()
        assert bug.short_desc == "new summary"
        assert bug.comments().last().thetext == "Renamed."
        assert any(message.to == ["owner@example.com"] for message in outbox)

    def test_update_mid_air(self, auth_client, test_api_uri, product, test_user):
        bug = BugFactory(product=product, reporter=test_user)
        client = auth_client()
        read = client.get(f"{test_api_uri}/bugs/{bug.pk}")

        Bug.objects.filter(pk=bug.pk).update(delta_ts=bug.delta_ts.replace(year=2030))
        response = client.put(
            f"{test_api_uri}/bugs/{bug.pk}",
            {"delta_ts": read.data["delta_ts"], "short_desc": "new summary"},
            format="json",
        )
        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error"] == "data_inconsistency"

    def test_update_denied(self, auth_client, test_api_uri, product):
        bug = BugFactory(product=product)
        client = auth_client()
        read = client.get(f"{test_api_uri}/bugs/{bug.pk}")
        response = client.put(
            f"{test_api_uri}/bugs/{bug.pk}",
            {"delta_ts": read.data["delta_ts"], "priority": "P1"},
            format="json",
        )
        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["error"] == "illegal_change"
        bug.refresh_from_db()
        assert bug.priority == "P2"

    def test_update_without_delta_ts(self, auth_client, test_api_uri, product, test_user):
        bug = BugFactory(product=product, reporter=test_user)
        response = auth_client().put(
            f"{test_api_uri}/bugs/{bug.pk}", {"short_desc": "new"}, format="json"
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_delete_not_allowed(self, auth_client, test_api_uri, product, editbugs_user):
        bug = BugFactory(product=product)
        response = auth_client(editbugs_user).delete(f"{test_api_uri}/bugs/{bug.pk}")
        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED
        assert Bug.objects.filter(pk=bug.pk).exists()


class TestEndpointsComments:
    def test_list(self, client, test_api_uri, product):
        bug = BugFactory(product=product)
        CommentFactory(bug=bug, thetext="second")
        response = client.get(f"{test_api_uri}/bugs/{bug.pk}/comments")
        assert response.status_code == status.HTTP_200_OK
        assert [comment["text"] for comment in response.data["results"]][-1] == "second"

    def test_private_hidden(self, client, auth_client, test_api_uri, product, insider):
        bug = BugFactory(product=product)
        CommentFactory(bug=bug, thetext="secret", isprivate=True)

        response = client.get(f"{test_api_uri}/bugs/{bug.pk}/comments")
        assert "secret" not in [c["text"] for c in response.data["results"]]

        response = auth_client(insider).get(f"{test_api_uri}/bugs/{bug.pk}/comments")
        assert "secret" in [c["text"] for c in response.data["results"]]

    def test_new_since(self, client, test_api_uri, product):
        bug = BugFactory(product=product)
        comment = CommentFactory(
            bug=bug, thetext="later", bug_when=bug.creation_ts.replace(year=2030)
        )
        response = client.get(
            f"{test_api_uri}/bugs/{bug.pk}/comments",
            {"new_since": bug.creation_ts.isoformat()},
        )
        assert [c["id"] for c in response.data["results"]] == [comment.pk]

    def test_create(
        self, auth_client, test_api_uri, product, django_capture_on_commit_callbacks
    ):
        bug = BugFactory(product=product)
        with django_capture_on_commit_callbacks(execute=True):
            response = auth_client().post(
                f"{test_api_uri}/bugs/{bug.pk}/comments",
                {"body": "me too"},
                format="json",
            )
        assert response.status_code == status.HTTP_201_CREATED
        comment = Comment.objects.get(pk=response.data["id"])
        assert comment.thetext == "me too"
        assert comment.who.login == "tester@example.com"

    def test_create_empty(self, auth_client, test_api_uri, product):
        bug = BugFactory(product=product)
        response = auth_client().post(
            f"{test_api_uri}/bugs/{bug.pk}/comments", {"body": "  "}, format="json"
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error"] == "comment_required"


class TestEndpointsAttachments:
    def test_create_and_retrieve(self, auth_client, test_api_uri, product):
        bug = BugFactory(product=product)
        client = auth_client()
        response = client.post(
            f"{test_api_uri}/bugs/{bug.pk}/attachments",
            {
                "data": base64.b64encode(b"some log").decode(),
                "file_name": "crash.log",
                "summary": "the log",
                "content_type": "text/plain",
            },
            format="json",
        )
        assert response.status_code == status.HTTP_201_CREATED
        attachment = Attachment.objects.get(pk=response.data["id"])
        assert attachment.bug == bug

        response = client.get(f"{test_api_uri}/bugs/{bug.pk}/attachments/{attachment.pk}")
        assert response.data["file_name"] == "crash.log"
        assert response.data["size"] == 8
        assert base64.b64decode(response.data["data"]) == b"some log"

    def test_invalid_data(self, auth_client, test_api_uri, product):
        bug = BugFactory(product=product)
        response = auth_client().post(
            f"{test_api_uri}/bugs/{bug.pk}/attachments",
            {"data": "not base64!", "file_name": "a.txt", "summary": "a"},
            format="json",
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_private_hidden(self, client, auth_client, test_api_uri, product, insider):
        bug = BugFactory(product=product)
        public = AttachmentFactory(bug=bug)
        AttachmentFactory(bug=bug, isprivate=True)

        response = client.get(f"{test_api_uri}/bugs/{bug.pk}/attachments")
        assert [a["id"] for a in response.data["results"]] == [public.pk]

        response = auth_client(insider).get(f"{test_api_uri}/bugs/{bug.pk}/attachments")
        assert response.data["count"] == 2


class TestEndpointsFlags:
    def test_set_and_list(self, auth_client, test_api_uri, product):
        review = FlagTypeFactory(name="review", is_multiplicable=False)
        bug = BugFactory(product=product)
        client = auth_client()

        response = client.post(
            f"{test_api_uri}/bugs/{bug.pk}/flags",
            {"flags": [{"type_id": review.pk, "status": "+"}]},
            format="json",
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.data["added"] == "review+"

        response = client.get(f"{test_api_uri}/bugs/{bug.pk}/flags")
        [flag] = response.data["flags"]
        assert flag["name"] == "review"
        assert flag["status"] == "+"
        assert flag["setter"] == "tester@example.com"
        assert flag["attachment_id"] is None

    def test_attachment_flag(self, auth_client, test_api_uri, product):
        approval = FlagTypeFactory(
            name="approval", target_type=FlagType.TargetType.ATTACHMENT
        )
        bug = BugFactory(product=product)
        attachment = AttachmentFactory(bug=bug)
        response = auth_client().post(
            f"{test_api_uri}/bugs/{bug.pk}/flags?attachment_id={attachment.pk}",
            {"flags": [{"type_id": approval.pk, "status": "?"}]},
            format="json",
        )
        assert response.status_code == status.HTTP_200_OK
        assert Flag.objects.get().attachment == attachment

    def test_missing_type(self, auth_client, test_api_uri, product):
        bug = BugFactory(product=product)
        response = auth_client().post(
            f"{test_api_uri}/bugs/{bug.pk}/flags",
            {"flags": [{"status": "+"}]},
            format="json",
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestEndpointsVotes:
    def test_vote(self, auth_client, test_api_uri, product):
        bug = BugFactory(product=product)
        client = auth_client()
        response = client.post(
            f"{test_api_uri}/bugs/{bug.pk}/votes", {"votes": 3}, format="json"
        )
        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"votes": 3, "total": 3}

        response = client.get(f"{test_api_uri}/bugs/{bug.pk}/votes")
        assert response.data == {"votes": 3, "total": 3}

    def test_vote_confirms(
        self,
        auth_client,
        test_api_uri,
        product,
        outbox,
        django_capture_on_commit_callbacks,
    ):
        product.votestoconfirm = 1
        product.save()
        bug = BugFactory(
            product=product,
            bug_status="UNCONFIRMED",
            everconfirmed=False,
            reporter=ProfileFactory(user__username="reporter@example.com"),
        )
        with django_capture_on_commit_callbacks(execute=True):
            response = auth_client().post(
                f"{test_api_uri}/bugs/{bug.pk}/votes", {"votes": 1}, format="json"
            )
        assert response.status_code == status.HTTP_200_OK

        bug.refresh_from_db()
        assert bug.bug_status == "NEW"
        assert bug.everconfirmed
        assert ["reporter@example.com"] in [message.to for message in outbox]

    def test_vote_mails_nothing(
        self,
        auth_client,
        test_api_uri,
        product,
        outbox,
        django_capture_on_commit_callbacks,
    ):
        bug = BugFactory(product=product)
        with django_capture_on_commit_callbacks(execute=True):
            auth_client().post(
                f"{test_api_uri}/bugs/{bug.pk}/votes", {"votes": 1}, format="json"
            )
        assert outbox == []

    def test_too_many(self, auth_client, test_api_uri, product):
        bug = BugFactory(product=product)
        response = auth_client().post(
            f"{test_api_uri}/bugs/{bug.pk}/votes", {"votes": 6}, format="json"
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_anonymous(self, client, test_api_uri, product):
        bug = BugFactory(product=product)
        response = client.get(f"{test_api_uri}/bugs/{bug.pk}/votes")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


class TestEndpointsHistory:
    def test_history(self, auth_client, test_api_uri, product, test_user):
        bug = BugFactory(product=product, reporter=test_user)
        client = auth_client()
        read = client.get(f"{test_api_uri}/bugs/{bug.pk}")
        client.put(
            f"{test_api_uri}/bugs/{bug.pk}",
            {"delta_ts": read.data["delta_ts"], "short_desc": "renamed"},
            format="json",
        )

        response = client.get(f"{test_api_uri}/bugs/{bug.pk}/history")
        assert response.status_code == status.HTTP_200_OK
        [operation] = response.data["history"]
        assert operation["who"] == "tester@example.com"
        assert operation["changes"][0]["fieldname"] == "short_desc"
        assert operation["changes"][0]["added"] == "renamed"


class TestEndpointsProducts:
    def test_accessible(self, auth_client, test_api_uri, product):
        response = auth_client().get(f"{test_api_uri}/products")
        assert response.status_code == status.HTTP_200_OK
        [data] = response.data["results"]
        assert data["name"] == "TestProduct"
        assert data["components"][0]["name"] == "TestComponent"
        assert data["components"][0]["default_assigned_to"] == "owner@example.com"
        assert sorted(data["versions"]) == ["1.0", "unspecified"]

    def test_enterable(self, auth_client, test_api_uri, product):
        ProductFactory(name="Closed", is_active=False)
        response = auth_client().get(f"{test_api_uri}/products", {"type": "enterable"})
        assert [p["name"] for p in response.data["results"]] == ["TestProduct"]

    def test_invalid_type(self, auth_client, test_api_uri, product):
        response = auth_client().get(f"{test_api_uri}/products", {"type": "all"})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_anonymous(self, client, test_api_uri, product):
        response = client.get(f"{test_api_uri}/products")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_retrieve(self, auth_client, test_api_uri, product):
        response = auth_client().get(f"{test_api_uri}/products/{product.pk}")
        assert response.status_code == status.HTTP_200_OK
