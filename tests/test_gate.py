import pytest

from zurl import models, schemas
from zurl.errors import NotFoundError, StoreError


def record(**fields):
    fields.setdefault("id", "promo")
    fields.setdefault("original_url", "https://example.com/landing?utm=spring")
    fields.setdefault("owner_id", "alice")
    return schemas.ShortLinkRecord(**fields)


class TestResolve:
    def test_returns_typed_record(self, gate, make_link):
        make_link("promo", is_protected=True, unlock_secret="abc123")
        found = gate.resolve("promo")
        assert isinstance(found, schemas.ShortLinkRecord)
        assert found.is_protected is True
        assert found.unlock_secret == "abc123"

    def test_missing_link_raises_not_found(self, gate):
        with pytest.raises(NotFoundError):
            gate.resolve("nope")

    def test_protected_row_without_secret_is_rejected_at_store_boundary(self, gate, make_link):
        make_link("broken", is_protected=True, unlock_secret=None)
        with pytest.raises(StoreError):
            gate.resolve("broken")

    def test_malformed_url_is_rejected_at_store_boundary(self, gate, make_link):
        make_link("bad", original_url="not a url")
        with pytest.raises(StoreError):
            gate.resolve("bad")

    def test_sees_protection_change_between_calls(self, gate, make_link, db):
        make_link("flip", is_protected=True, unlock_secret="abc123")
        assert gate.reveal(gate.resolve("flip")).status == "locked"

        db.get(models.ShortLink, "flip").is_protected = False
        db.commit()
        assert gate.reveal(gate.resolve("flip")).status == "redirect"


class TestRevealUnprotected:
    @pytest.mark.parametrize("secret", [None, "", "wrong", "abc123"])
    def test_always_redirects_to_stored_url(self, gate, secret):
        link = record(is_protected=False)
        result = gate.reveal(link, secret)
        assert result.status == "redirect"
        assert result.target == "https://example.com/landing?utm=spring"

    def test_stale_secret_is_ignored(self, gate):
        link = record(is_protected=False, unlock_secret="abc123")
        assert gate.reveal(link, "wrong").status == "redirect"

    def test_url_is_not_normalised(self, gate):
        link = record(original_url="https://Example.com")
        assert gate.reveal(link).target == "https://Example.com"


class TestRevealProtected:
    def test_locked_without_secret(self, gate):
        result = gate.reveal(record(is_protected=True, unlock_secret="abc123"))
        assert result.status == "locked"
        assert result.target is None

    def test_exact_secret_redirects(self, gate):
        result = gate.reveal(record(is_protected=True, unlock_secret="abc123"), "abc123")
        assert result.status == "redirect"
        assert result.target == "https://example.com/landing?utm=spring"

    @pytest.mark.parametrize("secret", ["ABC123", "abc123 ", " abc123", "abc12", ""])
    def test_anything_else_is_denied(self, gate, secret):
        result = gate.reveal(record(is_protected=True, unlock_secret="abc123"), secret)
        assert result.status == "denied"
        assert result.target is None

    def test_empty_string_secret_is_compared_literally(self, gate):
        link = record(is_protected=True, unlock_secret="")
        assert gate.reveal(link, "").status == "redirect"
        assert gate.reveal(link).status == "locked"

    def test_non_ascii_secret(self, gate):
        link = record(is_protected=True, unlock_secret="pässwörd")
        assert gate.reveal(link, "pässwörd").status == "redirect"
        assert gate.reveal(link, "passwort").status == "denied"

    def test_lone_surrogate_secret_is_denied_not_raised(self, gate):
        assert gate.reveal(record(is_protected=True, unlock_secret="abc123"), "\ud800").status == "denied"

    def test_lone_surrogate_secret_matches_itself(self, gate):
        link = record(is_protected=True, unlock_secret="ab\udfffcd")
        assert gate.reveal(link, "ab\udfffcd").status == "redirect"
        assert gate.reveal(link, "ab\udffecd").status == "denied"

    def test_attempts_are_independent(self, gate):
        link = record(is_protected=True, unlock_secret="abc123")
        for _ in range(5):
            assert gate.reveal(link, "nope").status == "denied"
        assert gate.reveal(link, "abc123").status == "redirect"

    def test_reveal_never_writes(self, gate, make_link, db):
        make_link("promo", is_protected=True, unlock_secret="abc123", click_count=4)
        link = gate.resolve("promo")
        gate.reveal(link, "abc123")
        gate.reveal(link, "wrong")
        gate.reveal(link)
        db.expire_all()
        assert db.get(models.ShortLink, "promo").click_count == 4
