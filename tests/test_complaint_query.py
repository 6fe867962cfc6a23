"""Tests for complaint listing, filtering, pagination, and the overview."""

import pytest

from models import STATUS_IN_PROGRESS, STATUS_REJECTED, Complaint
from utils import complaint_service
from utils.complaint_query import MAX_OFFSET, list_complaints, stats_overview
from utils.errors import Forbidden, ValidationFailed


@pytest.fixture
def seeded(ctx, users, complaint_payload):
    """Three complaints for the member and two for the other member."""
    made = []
    for title, category, priority, location in [
        ("Pothole near school", "Roads & Infrastructure", "Critical", "School Road"),
        ("No water since Monday", "Water Supply", "Low", "Block 100%"),
        ("Streetlight out", "Electricity", "Medium", "Main_Street"),
    ]:
        made.append(
            complaint_service.create_complaint(
                users.member,
                {**complaint_payload, "title": title, "category": category, "priority": priority, "location": location},
            )
        )
    for title in ("Garbage pile", "Bus stop damaged"):
        made.append(complaint_service.create_complaint(users.other, {**complaint_payload, "title": title}))
    complaint_service.transition(made[0].id, users.admin, STATUS_IN_PROGRESS)
    complaint_service.transition(made[3].id, users.admin, STATUS_REJECTED)
    return [c.id for c in made]


class TestMemberVisibility:
    def test_member_sees_only_own(self, seeded, users) -> None:
        page = list_complaints(users.member, {})

        assert page["pagination"]["total"] == 3
        assert {item["owner"] for item in page["items"]} == {users.member.id}

    def test_member_cannot_widen_with_user_filter(self, seeded, users) -> None:
        page = list_complaints(users.member, {"user": users.other.id})

        assert {item["owner"] for item in page["items"]} == {users.member.id}

    def test_member_may_narrow_own_results(self, seeded, users) -> None:
        page = list_complaints(users.member, {"status": "InProgress"})

        assert [item["id"] for item in page["items"]] == [seeded[0]]

    def test_listing_never_mutates(self, seeded, users) -> None:
        before = [(c.id, c.version, c.status) for c in Complaint.query.order_by(Complaint.id).all()]

        list_complaints(users.admin, {"sortBy": "priority", "limit": "2"})

        assert [(c.id, c.version, c.status) for c in Complaint.query.order_by(Complaint.id).all()] == before


class TestAdminFilters:
    def test_admin_sees_everything(self, seeded, users) -> None:
        assert list_complaints(users.admin, {})["pagination"]["total"] == 5

    def test_filter_by_owner_and_status(self, seeded, users) -> None:
        page = list_complaints(users.admin, {"user": users.other.id, "status": "Rejected"})

        assert [item["id"] for item in page["items"]] == [seeded[3]]

    def test_filter_by_category_and_priority(self, seeded, users) -> None:
        assert [i["id"] for i in list_complaints(users.admin, {"category": "Water Supply"})["items"]] == [seeded[1]]
        assert [i["id"] for i in list_complaints(users.admin, {"priority": "Critical"})["items"]] == [seeded[0]]

    def test_location_match_is_case_insensitive_and_literal(self, seeded, users) -> None:
        assert [i["id"] for i in list_complaints(users.admin, {"location": "school"})["items"]] == [seeded[0]]
        assert [i["id"] for i in list_complaints(users.admin, {"location": "100%"})["items"]] == [seeded[1]]
        assert [i["id"] for i in list_complaints(users.admin, {"location": "n_S"})["items"]] == [seeded[2]]

    @pytest.mark.parametrize(
        "args,field",
        [({"status": "Closed"}, "status"), ({"category": "Noise"}, "category"), ({"priority": "Urgent"}, "priority")],
    )
    def test_invalid_filters(self, seeded, users, args, field) -> None:
        with pytest.raises(ValidationFailed) as excinfo:
            list_complaints(users.admin, args)

        assert field in excinfo.value.errors


class TestPaginationAndSort:
    def test_pages(self, seeded, users) -> None:
        first = list_complaints(users.admin, {"limit": 2, "page": 1})
        third = list_complaints(users.admin, {"limit": 2, "page": 3})

        assert first["pagination"] == {"page": 1, "limit": 2, "total": 5, "pages": 3}
        assert len(first["items"]) == 2
        assert len(third["items"]) == 1

    def test_out_of_range_values_are_clamped(self, seeded, users, app) -> None:
        page = list_complaints(users.admin, {"limit": "100000", "page": "-4"})

        assert page["pagination"]["page"] == 1
        assert page["pagination"]["limit"] == app.config["COMPLAINTS_MAX_PER_PAGE"]

    def test_page_past_the_end_is_empty(self, seeded, users) -> None:
        page = list_complaints(users.admin, {"page": 9})

        assert page["items"] == []
        assert page["pagination"]["total"] == 5

    @pytest.mark.parametrize("page", ["99999999999999999999", 10**30])
    def test_huge_page_number_is_bounded(self, seeded, users, page) -> None:
        result = list_complaints(users.admin, {"page": page, "limit": 2})

        assert result["items"] == []
        assert result["pagination"]["page"] == MAX_OFFSET // 2
        assert result["pagination"]["total"] == 5

    def test_sort_by_priority_rank(self, seeded, users) -> None:
        ascending = list_complaints(users.member, {"sortBy": "priority", "sortOrder": "asc"})

        assert [i["priority"] for i in ascending["items"]] == ["Low", "Medium", "Critical"]

    def test_sort_by_title(self, seeded, users) -> None:
        page = list_complaints(users.member, {"sortBy": "title", "sortOrder": "asc"})

        assert [i["title"] for i in page["items"]] == ["No water since Monday", "Pothole near school", "Streetlight out"]

    def test_unknown_sort_key_falls_back(self, seeded, users) -> None:
        assert list_complaints(users.member, {"sortBy": "drop table"})["pagination"]["total"] == 3


class TestOverview:
    def test_counts_everything_live(self, seeded, users, app) -> None:
        stats = stats_overview(users.admin)

        assert stats["total"] == 5
        assert (stats["pending"], stats["inProgress"], stats["resolved"], stats["rejected"]) == (3, 1, 0, 1)
        assert {"category": "Sanitation", "count": 2} in stats["byCategory"]
        assert len(stats["recent"]) == min(5, app.config["OVERVIEW_RECENT_LIMIT"])

    def test_members_are_refused(self, seeded, users) -> None:
        with pytest.raises(Forbidden):
            stats_overview(users.member)
