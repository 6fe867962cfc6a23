"""Tests for like toggling."""

import pytest

from extensions import db
from models import Complaint, ComplaintLike, Dashboard
from utils import complaint_service
from utils.errors import NotFound
from utils.like_registry import like_count, toggle_like


class TestToggleLike:
    def test_toggle_adds_then_removes(self, ctx, users, complaint_payload) -> None:
        complaint = complaint_service.create_complaint(users.member, complaint_payload)

        assert toggle_like(complaint.id, users.other) == (True, 1)
        assert toggle_like(complaint.id, users.other) == (False, 0)
        assert ComplaintLike.query.filter_by(complaint_id=complaint.id).count() == 0

    def test_membership_is_per_subject(self, ctx, users, complaint_payload) -> None:
        complaint = complaint_service.create_complaint(users.member, complaint_payload)

        toggle_like(complaint.id, users.member)
        toggle_like(complaint.id, users.other)
        toggle_like(complaint.id, users.admin)
        liked, count = toggle_like(complaint.id, users.member)

        assert (liked, count) == (False, 2)
        reloaded = db.session.get(Complaint, complaint.id)
        assert sorted(reloaded.liked_by) == sorted([users.other.id, users.admin.id])
        payload = reloaded.to_payload(viewer_id=users.other.id)
        assert payload["likesCount"] == 2
        assert payload["likedByMe"] is True

    def test_double_toggle_restores_original_state(self, ctx, users, complaint_payload) -> None:
        complaint = complaint_service.create_complaint(users.member, complaint_payload)
        toggle_like(complaint.id, users.admin)
        before = like_count(complaint.id)

        toggle_like(complaint.id, users.other)
        toggle_like(complaint.id, users.other)

        assert like_count(complaint.id) == before

    def test_likes_do_not_touch_dashboard(self, ctx, users, complaint_payload) -> None:
        complaint = complaint_service.create_complaint(users.member, complaint_payload)
        before = Dashboard.query.filter_by(user_id=users.member.id).one().counters()

        toggle_like(complaint.id, users.other)

        assert Dashboard.query.filter_by(user_id=users.member.id).one().counters() == before

    def test_unknown_complaint(self, ctx, users) -> None:
        with pytest.raises(NotFound):
            toggle_like("missing-id", users.member)

    def test_likes_removed_with_complaint(self, ctx, users, complaint_payload) -> None:
        complaint = complaint_service.create_complaint(users.member, complaint_payload)
        toggle_like(complaint.id, users.other)

        complaint_service.delete_complaint(complaint.id, users.member)

        assert ComplaintLike.query.count() == 0
