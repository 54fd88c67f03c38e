from decimal import Decimal

import pytest

from amplygigs import models
from amplygigs.models import ReportStatus, TicketPaymentStatus, UserRole, utcnow
from amplygigs.services import moderation
from amplygigs.services.exceptions import ModerationError

from conftest import auth, make_user


def _report(db, reporter, reported, reason="Spam", status=ReportStatus.PENDING):
    report = models.UserReport(
        reporter_id=reporter.id,
        reported_user_id=reported.id,
        reason=reason,
        details="Sent the same link ten times",
        status=status,
    )
    db.add(report)
    db.commit()
    db.refresh(report)
    return report


def _ticket(db, buyer, musician, status=TicketPaymentStatus.COMPLETED):
    show = models.MusicianEvent(musician_id=musician.id, title="Live at the Shrine", ticket_price=Decimal("5000"))
    db.add(show)
    db.flush()
    purchase = models.TicketPurchase(
        musician_event_id=show.id,
        buyer_id=buyer.id,
        quantity=2,
        amount=Decimal("10000"),
        payment_status=status,
    )
    db.add(purchase)
    db.commit()
    db.refresh(purchase)
    return purchase


def test_dismiss_pending_report(db, admin, client_user, musician):
    report = _report(db, client_user, musician)
    now = utcnow()

    moderation.dismiss_report(db, admin, report.id, now)

    db.refresh(report)
    assert report.status == ReportStatus.DISMISSED
    assert report.reviewed_by == admin.id
    assert report.reviewed_at == now
    assert moderation.report_actions_available(report) == []
    action = db.query(models.AdminAction).one()
    assert (action.action_type, action.target_type, action.target_id) == (
        "report_dismiss",
        "user_report",
        str(report.id),
    )


def test_review_rolls_back_when_audit_fails(db, admin, client_user, musician, monkeypatch):
    report = _report(db, client_user, musician)

    def broken_audit(*args, **kwargs):
        raise RuntimeError("audit log unavailable")

    monkeypatch.setattr(moderation, "_audit", broken_audit)
    with pytest.raises(RuntimeError):
        moderation.dismiss_report(db, admin, report.id, utcnow())

    db.refresh(report)
    assert report.status == ReportStatus.PENDING
    assert report.reviewed_by is None
    assert db.query(models.AdminAction).count() == 0


def test_suspend_rolls_back_when_audit_fails(db, admin, musician, monkeypatch):
    def broken_audit(*args, **kwargs):
        raise RuntimeError("audit log unavailable")

    monkeypatch.setattr(moderation, "_audit", broken_audit)
    with pytest.raises(RuntimeError):
        moderation.suspend_user(db, admin, musician.id, "Spam", utcnow())

    db.refresh(musician)
    assert musician.is_suspended is False
    assert db.query(models.AdminAction).count() == 0


def test_pending_report_offers_actions(db, client_user, musician):
    report = _report(db, client_user, musician)
    assert moderation.report_actions_available(report) == ["dismiss", "action", "suspend_user"]


def test_resolved_report_cannot_be_reviewed_again(db, admin, client_user, musician):
    report = _report(db, client_user, musician)
    moderation.action_report(db, admin, report.id, utcnow())
    with pytest.raises(ModerationError) as exc:
        moderation.dismiss_report(db, admin, report.id, utcnow())
    assert exc.value.status_code == 409
    assert db.query(models.AdminAction).count() == 1


def test_unknown_review_action(db, admin, client_user, musician):
    report = _report(db, client_user, musician)
    with pytest.raises(ModerationError, match="Unknown report action"):
        moderation.review_report(db, admin, report.id, "escalate", utcnow())


def test_suspend_from_report(db, admin, client_user, musician):
    report = _report(db, client_user, musician)
    user = moderation.suspend_user(db, admin, musician.id, "Harassment", utcnow(), report_id=report.id)
    assert user.is_suspended is True
    assert user.suspended_by == admin.id
    db.refresh(report)
    assert report.status == ReportStatus.ACTIONED
    action = db.query(models.AdminAction).filter_by(action_type="suspend_user").one()
    assert action.details == {"report_id": report.id}
    assert db.query(models.Notification).filter_by(user_id=musician.id, type="account_suspended").count() == 1

    with pytest.raises(ModerationError, match="already suspended"):
        moderation.suspend_user(db, admin, musician.id, "Again", utcnow())

    moderation.unsuspend_user(db, admin, musician.id, utcnow())
    assert musician.is_suspended is False
    assert musician.suspension_reason is None


def test_admin_cannot_suspend_self(db, admin):
    with pytest.raises(ModerationError, match="yourself"):
        moderation.suspend_user(db, admin, admin.id, "Oops", utcnow())


def test_flag_and_delete_events(db, admin, client_user, musician):
    gig = models.Event(client_id=client_user.id, title="Wedding band needed")
    show = models.MusicianEvent(musician_id=musician.id, title="Album launch")
    db.add_all([gig, show])
    db.commit()

    flagged = moderation.flag_event(db, admin, "client", gig.id, "Misleading", utcnow())
    assert flagged.is_flagged is True
    assert flagged.flagged_by == admin.id
    with pytest.raises(ModerationError, match="already flagged"):
        moderation.flag_event(db, admin, "client", gig.id, "Again", utcnow())

    show_id = show.id
    moderation.delete_event(db, admin, "musician", show_id, utcnow())
    assert db.get(models.MusicianEvent, show_id) is None
    deleted = db.query(models.AdminAction).filter_by(action_type="delete_event").one()
    assert deleted.target_type == "musician_events"
    assert deleted.details == {"title": "Album launch"}

    with pytest.raises(ModerationError, match="Unknown event type"):
        moderation.flag_event(db, admin, "festival", gig.id, "x", utcnow())


def test_refund_ticket_once(db, admin, client_user, musician):
    purchase = _ticket(db, client_user, musician)
    refunded = moderation.refund_ticket(db, admin, purchase.id, "Show cancelled", utcnow())
    assert refunded.payment_status == TicketPaymentStatus.REFUNDED
    assert refunded.refunded_by == admin.id

    with pytest.raises(ModerationError) as exc:
        moderation.refund_ticket(db, admin, purchase.id, "Show cancelled", utcnow())
    assert exc.value.status_code == 409
    assert db.query(models.AdminAction).filter_by(action_type="refund_ticket").count() == 1


def test_refund_pending_ticket_rejected(db, admin, client_user, musician):
    purchase = _ticket(db, client_user, musician, status=TicketPaymentStatus.PENDING)
    with pytest.raises(ModerationError, match="completed purchases"):
        moderation.refund_ticket(db, admin, purchase.id, "n/a", utcnow())


def test_report_stats_and_filters(db, client_user, musician):
    _report(db, client_user, musician, reason="Spam")
    _report(db, client_user, musician, reason="No show", status=ReportStatus.DISMISSED)
    stats = moderation.report_stats(db)
    assert stats == {"pending": 1, "actioned": 0, "dismissed": 1, "total": 2}
    assert moderation.list_reports(db, "pending").count() == 1
    assert moderation.list_reports(db, "all", "show").count() == 1


def test_export_reports_csv(db, client_user, musician):
    _report(db, client_user, musician, reason="Spam")
    lines = moderation.export_reports_csv(moderation.list_reports(db).all()).strip().splitlines()
    assert lines[0] == "id,reporter_id,reported_user_id,reason,status,reviewed_by,reviewed_at,created_at"
    assert lines[1].split(",")[3:6] == ["Spam", "pending", ""]


def test_admin_endpoints_forbidden_for_regular_users(client, db, client_user, musician):
    support = make_user(db, UserRole.CLIENT, is_support=True)
    report = _report(db, client_user, musician)

    assert client.get("/api/v1/admin/reports", headers=auth(client_user)).status_code == 403
    res = client.post(
        f"/api/v1/admin/users/{musician.id}/suspend", json={"reason": "x"}, headers=auth(support)
    )
    assert res.status_code == 403

    res = client.post(
        f"/api/v1/admin/reports/{report.id}/review", json={"action": "dismiss"}, headers=auth(support)
    )
    assert res.status_code == 200
    assert res.json()["report"]["status"] == "dismissed"
    assert res.json()["report"]["available_actions"] == []


def test_admin_report_listing(client, db, admin, client_user, musician):
    for n in range(3):
        _report(db, client_user, musician, reason=f"Reason {n}")
    res = client.get(
        "/api/v1/admin/reports",
        params={"range": "[0,1]", "sort": '["id","DESC"]', "status": "pending"},
        headers=auth(admin),
    )
    assert res.status_code == 200
    assert res.headers["X-Total-Count"] == "3"
    assert res.headers["Content-Range"] == "reports 0-1/3"
    assert [r["reason"] for r in res.json()["reports"]] == ["Reason 2", "Reason 1"]

    res = client.get("/api/v1/admin/reports/stats", headers=auth(admin))
    assert res.json()["stats"]["pending"] == 3


def test_admin_export_download(client, db, admin, client_user, musician):
    _report(db, client_user, musician)
    res = client.get("/api/v1/admin/reports/export", headers=auth(admin))
    assert res.status_code == 200
    assert res.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=user_reports_" in res.headers["content-disposition"]


def test_admin_refund_ticket_endpoint(client, db, admin, client_user, musician):
    purchase = _ticket(db, client_user, musician)
    url = f"/api/v1/admin/tickets/{purchase.id}/refund"
    res = client.post(url, json={"reason": "Venue flooded"}, headers=auth(admin))
    assert res.status_code == 200
    assert res.json()["purchase"]["payment_status"] == "refunded"
    res = client.post(url, json={"reason": "Venue flooded"}, headers=auth(admin))
    assert res.status_code == 409

    res = client.get("/api/v1/admin/actions", headers=auth(admin))
    assert [a["action_type"] for a in res.json()["actions"]] == ["refund_ticket"]


def test_suspended_user_is_locked_out(client, db, admin, musician):
    res = client.post(
        f"/api/v1/admin/users/{musician.id}/suspend", json={"reason": "Fraud"}, headers=auth(admin)
    )
    assert res.status_code == 200
    res = client.get("/api/v1/notifications", headers=auth(musician))
    assert res.status_code == 403
    assert res.json()["error"] == "Account suspended"


def test_admin_email_allowlist(client, db, monkeypatch, client_user, musician):
    listed = make_user(db, UserRole.CLIENT, email="ops@amplygigs.test")
    monkeypatch.setattr("amplygigs.api.dependencies.admin_emails", lambda: {"ops@amplygigs.test"})
    gig = models.Event(client_id=client_user.id, title="Corporate dinner")
    db.add(gig)
    db.commit()
    res = client.post(
        f"/api/v1/admin/events/client/{gig.id}/flag", json={"reason": "Duplicate"}, headers=auth(listed)
    )
    assert res.status_code == 200
    assert res.json()["event"]["is_flagged"] is True

    res = client.request("DELETE", f"/api/v1/admin/events/client/{gig.id}", headers=auth(listed))
    assert res.status_code == 200
    assert res.json()["message"] == "Event deleted"


def test_admin_listing_ignores_malformed_range(client, db, admin, client_user, musician):
    _report(db, client_user, musician)
    res = client.get("/api/v1/admin/reports", params={"range": '["a","b"]'}, headers=auth(admin))
    assert res.status_code == 200
    assert res.headers["Content-Range"] == "reports 0-24/1"
    assert len(res.json()["reports"]) == 1
