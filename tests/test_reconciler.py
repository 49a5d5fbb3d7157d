"""Tests for service field reconciliation."""

from identity_hub.models.identity import Service, ServicePatch
from identity_hub.reconciliation import apply_patch, reconcile


def _patch(**fields) -> ServicePatch:
    return ServicePatch.model_validate(fields)


class TestOwnership:
    """Ownership aliases always agree after reconciliation."""

    def test_profile_ids_fill_all_aliases(self):
        result = reconcile(_patch(profileIds=["a", "b", "a"]))
        assert result.profile_ids == ["a", "b"]
        assert result.owner_identity_ids == ["a", "b"]
        assert result.identity_id == "a"

    def test_owner_identity_ids_used_when_profile_ids_empty(self):
        result = reconcile(_patch(profileIds=[], ownerIdentityIds=["o"]))
        assert result.profile_ids == ["o"]
        assert result.identity_id == "o"

    def test_single_identity_id_becomes_list(self):
        result = reconcile(_patch(identityId="solo"))
        assert result.profile_ids == ["solo"]
        assert result.owner_identity_ids == ["solo"]

    def test_partial_update_keeps_owners(self):
        """A rename must not erase ownership."""
        existing = Service(name="Netflix", profile_ids=["a", "b"], owner_identity_ids=["a", "b"])
        result = reconcile(_patch(name="Netflix UK"), existing)
        assert result.profile_ids == ["a", "b"]
        assert apply_patch(existing, result).owner_ids == ["a", "b"]

    def test_explicit_empty_clears_owners(self):
        existing = Service(name="Netflix", profile_ids=["a"], identity_id="a")
        result = reconcile(_patch(profileIds=[]), existing)
        assert result.profile_ids == []
        assert result.identity_id is None
        assert apply_patch(existing, result).profile_ids == []

    def test_create_without_owners_touches_nothing(self):
        result = reconcile(_patch(name="Spotify"))
        assert not result.supplied("profile_ids")
        assert apply_patch(None, result).profile_ids == []


class TestUrlMirror:
    def test_website_url_wins(self):
        result = reconcile(_patch(websiteUrl="https://a.example", loginUrl="https://b.example"))
        assert result.website_url == "https://a.example"
        assert result.login_url == "https://a.example"

    def test_login_url_mirrors_into_website_url(self):
        result = reconcile(_patch(loginUrl="https://login.example"))
        assert result.website_url == "https://login.example"

    def test_previous_url_kept_on_partial_update(self):
        existing = Service(name="X", login_url="https://old.example")
        result = reconcile(_patch(name="Y"), existing)
        assert result.website_url == "https://old.example"
        assert result.login_url == "https://old.example"


class TestBillingEmailMirror:
    def test_email_id_mirrors(self):
        result = reconcile(_patch(emailId="e1"))
        assert result.billing_email_id == "e1"
        assert result.email_id == "e1"

    def test_not_supplied_stays_unsupplied(self):
        existing = Service(name="X", billing_email_id="e1", email_id="e1")
        result = reconcile(_patch(name="Y"), existing)
        assert not result.supplied("billing_email_id")
        assert apply_patch(existing, result).billing_email_id == "e1"


class TestLoginEmail:
    """loginEmail: absent, cleared, or a value."""

    addresses = {"e1": "billing@example.com"}

    def test_derived_from_billing_email_on_create(self):
        result = reconcile(_patch(name="X", billingEmailId="e1"), None, self.addresses)
        assert result.login_email == "billing@example.com"

    def test_explicit_value_kept(self):
        result = reconcile(
            _patch(billingEmailId="e1", loginEmail="me@example.com"), None, self.addresses,
        )
        assert result.login_email == "me@example.com"

    def test_explicit_null_clears_and_is_not_refilled(self):
        existing = Service(name="X", billing_email_id="e1", login_email="old@example.com")
        result = reconcile(_patch(loginEmail=None), existing, self.addresses)
        assert result.login_email == ""
        saved = apply_patch(existing, result)
        assert saved.login_email == ""

        # A later unrelated update does not bring it back
        later = reconcile(_patch(notes="hi"), saved, self.addresses)
        assert not later.supplied("login_email")
        assert apply_patch(saved, later).login_email == ""

    def test_existing_value_not_overwritten_by_derivation(self):
        existing = Service(name="X", login_email="mine@example.com")
        result = reconcile(_patch(billingEmailId="e1"), existing, self.addresses)
        assert not result.supplied("login_email")
        assert apply_patch(existing, result).login_email == "mine@example.com"

    def test_unknown_billing_email_derives_nothing(self):
        result = reconcile(_patch(billingEmailId="missing"), None, self.addresses)
        assert not result.supplied("login_email")


class TestApplyPatch:
    def test_null_required_field_is_ignored(self):
        existing = Service(name="Netflix", category="Streaming")
        saved = apply_patch(existing, reconcile(_patch(name=None, notes="n"), existing))
        assert saved.name == "Netflix"
        assert saved.notes == "n"

    def test_keeps_id(self):
        existing = Service(name="Netflix")
        assert apply_patch(existing, reconcile(_patch(notes="x"), existing)).id == existing.id
