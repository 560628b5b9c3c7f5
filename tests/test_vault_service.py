"""Tests for secretvault.vault.service — scoping, paging, partial updates, soft delete."""

from __future__ import annotations

import threading
from datetime import date

import pytest

from secretvault.vault.errors import NotFoundError, OperationCancelledError, ValidationError
from secretvault.vault.models import CreditCard, CredentialType, SecureNote, WebLogin, secret_to_row
from secretvault.vault.service import SecretService


def _note(title: str) -> dict:
    return {"credential_type": "SECURE_NOTE", "user_id": "user-1", "title": title, "content": "x"}


class TestCreateSecret:
    def test_returns_id_and_persists(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        secret = service.get_secret(actor, secret_id)
        assert secret.credential == WebLogin(username="alice", password="hunter2")
        assert secret.user_id == "user-1"
        assert secret.organization_id == actor.org_id
        assert secret.deleted_at is None

    def test_timestamps_stamped_once(self, service, actor, web_login_payload, start_time):
        secret = service.get_secret(actor, service.create_secret(actor, web_login_payload))
        assert secret.created_at == start_time
        assert secret.updated_at == secret.created_at

    def test_ids_are_unique(self, service, actor, web_login_payload):
        ids = {service.create_secret(actor, web_login_payload) for _ in range(20)}
        assert len(ids) == 20

    def test_uses_injected_id_factory(self, repo, actor, web_login_payload):
        svc = SecretService(repo, id_factory=lambda: "7d5b1a52-0f0e-4c6c-9a37-1f1c3b1a0e11")
        assert svc.create_secret(actor, web_login_payload) == "7d5b1a52-0f0e-4c6c-9a37-1f1c3b1a0e11"

    def test_irrelevant_fields_are_nulled(self, service, actor):
        secret_id = service.create_secret(
            actor,
            {
                "credential_type": "CREDIT_CARD",
                "user_id": "user-1",
                "username": "ignored",
                "card_number": "4111111111111111",
                "expiry_date": "2027-09-01",
                "cvv": "123",
            },
        )
        secret = service.get_secret(actor, secret_id)
        assert secret.credential == CreditCard(
            card_number="4111111111111111", expiry_date=date(2027, 9, 1), cvv="123"
        )

    def test_invalid_type_persists_nothing(self, service, repo, actor, web_login_payload):
        web_login_payload["credential_type"] = "SSH_KEY"
        with pytest.raises(ValidationError, match="credentialType"):
            service.create_secret(actor, web_login_payload)
        assert repo.list_active(actor.org_id, 0, 100) == ([], 0)

    def test_missing_type_rejected(self, service, repo, actor):
        with pytest.raises(ValidationError):
            service.create_secret(actor, {"user_id": "user-1", "title": "t"})
        assert repo.list_active(actor.org_id, 0, 100)[1] == 0

    def test_foreign_organization_rejected(self, service, repo, actor, web_login_payload):
        web_login_payload["organization_id"] = "org-elsewhere"
        with pytest.raises(ValidationError, match="organizationId"):
            service.create_secret(actor, web_login_payload)
        assert repo.list_active("org-elsewhere", 0, 100)[1] == 0

    def test_defaults_owner_to_actor(self, service, actor):
        secret_id = service.create_secret(actor, {"credential_type": "SECURE_NOTE", "title": "t"})
        secret = service.get_secret(actor, secret_id)
        assert secret.user_id == actor.actor_id
        assert secret.organization_id == actor.org_id


class TestListSecrets:
    def test_ordered_by_creation(self, service, actor):
        ids = [service.create_secret(actor, _note(f"n{i}")) for i in range(5)]
        page = service.list_secrets(actor, offset=0, limit=100)
        assert [s.id for s in page.secrets] == ids
        assert page.total_count == 5

    def test_total_count_independent_of_window(self, service, actor):
        ids = [service.create_secret(actor, _note(f"n{i}")) for i in range(7)]
        page = service.list_secrets(actor, offset=2, limit=3)
        assert [s.id for s in page.secrets] == ids[2:5]
        assert page.total_count == 7

    def test_offset_past_end(self, service, actor):
        n = 4
        for i in range(n):
            service.create_secret(actor, _note(f"n{i}"))
        full = service.list_secrets(actor, offset=0, limit=n)
        assert len(full.secrets) == n
        assert full.total_count == n
        empty = service.list_secrets(actor, offset=n, limit=1)
        assert empty.secrets == []
        assert empty.total_count == n

    def test_includes_teammates_secrets(self, service, actor, teammate):
        service.create_secret(teammate, {**_note("shared"), "user_id": "user-2"})
        page = service.list_secrets(actor)
        assert page.total_count == 1

    @pytest.mark.parametrize("offset,limit", [(-1, 10), (101, 10), (0, 0), (0, 101)])
    def test_out_of_range_rejected(self, service, actor, offset, limit):
        with pytest.raises(ValidationError):
            service.list_secrets(actor, offset=offset, limit=limit)

    def test_bounds_accepted(self, service, actor):
        assert service.list_secrets(actor, offset=100, limit=1).secrets == []
        assert service.list_secrets(actor, offset=0, limit=100).total_count == 0


class TestOrganizationScoping:
    def test_outsider_cannot_list(self, service, actor, outsider, web_login_payload):
        service.create_secret(actor, web_login_payload)
        page = service.list_secrets(outsider)
        assert page.secrets == []
        assert page.total_count == 0

    def test_outsider_cannot_read(self, service, actor, outsider, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        with pytest.raises(NotFoundError):
            service.get_secret(outsider, secret_id)

    def test_outsider_cannot_update(self, service, actor, outsider, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        with pytest.raises(NotFoundError):
            service.update_secret(outsider, secret_id, {"password": "pwned"})
        assert service.get_secret(actor, secret_id).credential.password == "hunter2"

    def test_outsider_cannot_delete(self, service, actor, outsider, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        assert service.delete_secret(outsider, secret_id) is None
        assert service.get_secret(actor, secret_id).is_active

    def test_not_found_message_does_not_leak(self, service, actor, outsider, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        with pytest.raises(NotFoundError) as foreign:
            service.get_secret(outsider, secret_id)
        with pytest.raises(NotFoundError) as missing:
            service.get_secret(outsider, "00000000-0000-4000-8000-000000000000")
        assert foreign.value.message == missing.value.message


class TestUpdateSecret:
    def test_omitted_fields_preserved(self, service, actor):
        secret_id = service.create_secret(
            actor, {"credential_type": "WEB_LOGIN", "username": "a", "password": "b"}
        )
        before = service.get_secret(actor, secret_id)
        service.update_secret(actor, secret_id, {"password": "c"})
        after = service.get_secret(actor, secret_id)
        assert after.credential == WebLogin(username="a", password="c")
        assert after.updated_at > before.updated_at
        assert after.created_at == before.created_at

    def test_empty_update_bumps_timestamp(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        before = service.get_secret(actor, secret_id)
        service.update_secret(actor, secret_id, {})
        after = service.get_secret(actor, secret_id)
        assert after.credential == before.credential
        assert after.updated_at > before.updated_at

    def test_explicit_empty_clears_field(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        service.update_secret(actor, secret_id, {"username": ""})
        assert service.get_secret(actor, secret_id).credential == WebLogin(
            username=None, password="hunter2"
        )

    def test_type_change_clears_stale_fields(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        service.update_secret(
            actor, secret_id, {"title": "wifi", "content": "pass: abc"}, credential_type="SECURE_NOTE"
        )
        secret = service.get_secret(actor, secret_id)
        assert secret.type == CredentialType.SECURE_NOTE
        assert secret.credential == SecureNote(title="wifi", content="pass: abc")

    def test_same_type_is_not_a_type_change(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        service.update_secret(actor, secret_id, {"password": "new"}, credential_type="WEB_LOGIN")
        assert service.get_secret(actor, secret_id).credential == WebLogin("alice", "new")

    def test_invalid_type_rejected(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        with pytest.raises(ValidationError):
            service.update_secret(actor, secret_id, {}, credential_type="BANK_ACCOUNT")

    def test_expiry_date_parsed(self, service, actor):
        secret_id = service.create_secret(
            actor, {"credential_type": "CREDIT_CARD", "card_number": "4242", "cvv": "1"}
        )
        service.update_secret(actor, secret_id, {"expiry_date": "11/29"})
        assert service.get_secret(actor, secret_id).credential.expiry_date == date(2029, 11, 1)

    def test_missing_secret(self, service, actor):
        with pytest.raises(NotFoundError):
            service.update_secret(actor, "00000000-0000-4000-8000-000000000000", {"password": "x"})

    def test_malformed_id_is_not_found(self, service, actor):
        with pytest.raises(NotFoundError):
            service.update_secret(actor, "not-a-uuid", {"password": "x"})

    def test_deleted_secret(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        service.delete_secret(actor, secret_id)
        with pytest.raises(NotFoundError):
            service.update_secret(actor, secret_id, {"password": "x"})

    def test_deleted_between_read_and_write(self, service, repo, actor, web_login_payload, monkeypatch):
        secret_id = service.create_secret(actor, web_login_payload)
        monkeypatch.setattr(repo, "update_partial", lambda *a, **kw: False)
        with pytest.raises(NotFoundError):
            service.update_secret(actor, secret_id, {"password": "x"})

    def test_retyped_between_read_and_write(self, service, repo, actor, web_login_payload, monkeypatch):
        secret_id = service.create_secret(actor, web_login_payload)
        write = repo.update_partial

        def retype_first(*args, **kwargs):
            # Another request turns the login into a card after our read
            monkeypatch.setattr(repo, "update_partial", write)
            service.update_secret(actor, secret_id, {"card_number": "4242"}, "CREDIT_CARD")
            return write(*args, **kwargs)

        monkeypatch.setattr(repo, "update_partial", retype_first)
        with pytest.raises(NotFoundError):
            service.update_secret(actor, secret_id, {"username": "stale"})

        stored = repo.find_by_id(secret_id, actor.org_id)
        assert stored.credential == CreditCard(card_number="4242", expiry_date=None, cvv=None)
        assert secret_to_row(stored)["username"] is None

    def test_write_pinned_to_read_type(self, service, repo, actor, web_login_payload, monkeypatch):
        secret_id = service.create_secret(actor, web_login_payload)
        calls = []
        write = repo.update_partial
        monkeypatch.setattr(
            repo, "update_partial", lambda *a, **kw: calls.append(kw) or write(*a, **kw)
        )
        service.update_secret(actor, secret_id, {"password": "x"})
        assert calls[0]["expected_type"] is CredentialType.WEB_LOGIN


class TestDeleteSecret:
    def test_returns_post_mutation_snapshot(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        deleted = service.delete_secret(actor, secret_id)
        assert deleted is not None
        assert deleted.id == secret_id
        assert deleted.deleted_at is not None
        assert deleted.updated_at == deleted.deleted_at
        assert deleted.credential == WebLogin("alice", "hunter2")

    def test_double_delete(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        assert service.delete_secret(actor, secret_id) is not None
        assert service.delete_secret(actor, secret_id) is None

    def test_excluded_from_every_window(self, service, actor):
        ids = [service.create_secret(actor, _note(f"n{i}")) for i in range(6)]
        service.delete_secret(actor, ids[3])
        seen = []
        for offset in range(0, 6):
            page = service.list_secrets(actor, offset=offset, limit=1)
            assert page.total_count == 5
            seen.extend(s.id for s in page.secrets)
        assert ids[3] not in seen
        assert seen == [i for i in ids if i != ids[3]]

    def test_soft_delete_keeps_row(self, service, repo, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        service.delete_secret(actor, secret_id)
        assert repo.find_by_id(secret_id, actor.org_id) is None
        assert secret_id in repo._rows

    def test_unknown_and_malformed_ids(self, service, actor):
        assert service.delete_secret(actor, "00000000-0000-4000-8000-000000000000") is None
        assert service.delete_secret(actor, "nope") is None

    def test_concurrent_deletes_single_winner(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        workers = 16
        barrier = threading.Barrier(workers)
        results = []
        results_lock = threading.Lock()

        def attempt():
            barrier.wait()
            outcome = service.delete_secret(actor, secret_id)
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        winners = [r for r in results if r is not None]
        assert len(results) == workers
        assert len(winners) == 1
        assert winners[0].id == secret_id


class TestCancellation:
    def test_create_cancelled_writes_nothing(self, service, repo, actor, web_login_payload):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelledError):
            service.create_secret(actor, web_login_payload, cancel=cancel)
        assert repo.list_active(actor.org_id, 0, 100)[1] == 0

    def test_update_cancelled_writes_nothing(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        before = service.get_secret(actor, secret_id)
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelledError):
            service.update_secret(actor, secret_id, {"password": "x"}, cancel=cancel)
        assert service.get_secret(actor, secret_id) == before

    def test_delete_cancelled_keeps_secret(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload)
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelledError):
            service.delete_secret(actor, secret_id, cancel=cancel)
        assert service.get_secret(actor, secret_id).is_active

    def test_unset_event_proceeds(self, service, actor, web_login_payload):
        secret_id = service.create_secret(actor, web_login_payload, cancel=threading.Event())
        assert service.delete_secret(actor, secret_id, cancel=threading.Event()) is not None
