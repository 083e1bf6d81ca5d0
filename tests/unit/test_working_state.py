"""Tests for the working state builder."""

from __future__ import annotations

import pytest

from conftest import make_rotator
from pullsecret_rotator.builders.working_state import (
    SpecValidator,
    create_generated_secrets_from_spec,
    normalize_registry_host,
)
from pullsecret_rotator.models import GeneratedSecret, ServiceAccountRef
from pullsecret_rotator.utils.errors import ReconcileError, SelectorError, ValidationError


class TestNormalizeRegistryHost:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://registry.example.com", "registry.example.com"),
            ("http://registry.example.com", "registry.example.com"),
            ("registry.example.com", "registry.example.com"),
            ("https://", "https://"),
            ("http://", "http://"),
            ("  https://registry.example.com  ", "registry.example.com"),
        ],
    )
    def test_scheme_is_stripped(self, url, expected):
        assert normalize_registry_host(url) == expected

    @pytest.mark.parametrize("url", [None, "", "   ", 42])
    def test_missing_url_is_rejected(self, url):
        with pytest.raises(ValidationError):
            normalize_registry_host(url)


class TestGeneratedSecrets:
    def test_type_defaults_to_docker(self):
        secrets = create_generated_secrets_from_spec({"generatedSecrets": [{"secretName": "a"}]})

        assert secrets == [GeneratedSecret("a", "docker")]

    def test_legacy_secret_name_is_merged(self):
        secrets = create_generated_secrets_from_spec(
            {"generatedSecrets": [{"secretName": "a", "secretType": "generic"}], "secretName": "legacy"}
        )

        assert secrets == [GeneratedSecret("a", "generic"), GeneratedSecret("legacy", "docker")]

    def test_legacy_secret_name_does_not_duplicate(self):
        secrets = create_generated_secrets_from_spec(
            {"generatedSecrets": [{"secretName": "a", "secretType": "generic"}], "secretName": "a"}
        )

        assert secrets == [GeneratedSecret("a", "generic")]

    def test_legacy_secret_name_alone(self):
        assert create_generated_secrets_from_spec({"secretName": "legacy"}) == [GeneratedSecret("legacy", "docker")]

    @pytest.mark.parametrize(
        "spec",
        [
            {},
            {"generatedSecrets": []},
            {"generatedSecrets": "reg-cred"},
            {"generatedSecrets": [{"secretType": "docker"}]},
            {"generatedSecrets": [{"secretName": "a", "secretType": "ssh"}]},
            {"generatedSecrets": [{"secretName": "a"}, {"secretName": "a", "secretType": "generic"}]},
            {"secretName": ["legacy"]},
            {"generatedSecrets": [{"secretName": "a"}], "secretName": 5},
        ],
    )
    def test_invalid_declarations(self, spec):
        with pytest.raises(ValidationError):
            create_generated_secrets_from_spec(spec)


class TestSpecValidator:
    def test_validate_builds_working_state(self, store):
        rotator = make_rotator(
            spec={
                "namespaceSelector": {"matchLabels": {"team": "a"}},
                "artifactoryUrl": "https://registry.example.com",
                "generatedSecrets": [{"secretName": "reg-cred", "secretType": "generic"}],
                "serviceAccount": {"name": "rotator", "namespace": "operators"},
                "refreshInterval": "30m",
                "secretMetadata": {"labels": {"app": "pull"}, "annotations": {"note": "x"}},
                "security": {"enabled": True, "certificateSecretName": "certs"},
            }
        )

        state = SpecValidator(store).validate(rotator)

        assert state.registry_host == "registry.example.com"
        assert state.secret_names == ["reg-cred"]
        assert state.service_account == ServiceAccountRef("rotator", "operators")
        assert state.refresh_interval == 1800.0
        assert state.secret_labels == {"app": "pull"}
        assert state.secret_annotations == {"note": "x"}
        assert state.security.enabled is True
        assert state.security.certificate_secret_name == "certs"
        assert state.selector.to_query() == "team=a"

    def test_invalid_selector(self, store):
        rotator = make_rotator(
            spec={
                "namespaceSelector": {"matchExpressions": [{"key": "team", "operator": "In", "values": []}]},
                "artifactoryUrl": "registry.example.com",
                "secretName": "reg-cred",
            }
        )

        with pytest.raises(SelectorError):
            SpecValidator(store).validate(rotator)

    def test_invalid_secret_metadata(self, store):
        rotator = make_rotator()
        rotator["spec"]["secretMetadata"] = {"labels": {"count": 3}}

        with pytest.raises(ValidationError):
            SpecValidator(store).validate(rotator)

    def test_service_account_defaults_to_operator_identity(self, store, monkeypatch):
        monkeypatch.setenv("POD_NAME", "rotator-0")
        monkeypatch.setenv("POD_NAMESPACE", "operators")
        store.pods[("operators", "rotator-0")] = {"spec": {"serviceAccountName": "rotator-sa"}}
        validator = SpecValidator(store)

        assert validator.resolve_service_account({}) == ServiceAccountRef("rotator-sa", "operators")
        assert validator.resolve_service_account({"serviceAccount": {"name": "other"}}) == ServiceAccountRef(
            "other", "operators"
        )
        assert validator.resolve_service_account({"serviceAccount": {"namespace": "apps"}}) == ServiceAccountRef(
            "rotator-sa", "apps"
        )

    def test_operator_identity_is_cached(self, store, monkeypatch):
        monkeypatch.setenv("POD_NAME", "rotator-0")
        monkeypatch.setenv("POD_NAMESPACE", "operators")
        store.pods[("operators", "rotator-0")] = {"spec": {}}
        validator = SpecValidator(store)

        first = validator.discover_self_identity()
        second = validator.discover_self_identity()

        assert first == second == ServiceAccountRef("default", "operators")
        assert [call for call in store.calls if call[0] == "read_pod"] == [("read_pod", "operators", "rotator-0")]

    def test_declared_account_skips_discovery(self, store, monkeypatch):
        monkeypatch.delenv("POD_NAME", raising=False)

        account = SpecValidator(store).resolve_service_account(
            {"serviceAccount": {"name": "rotator", "namespace": "operators"}}
        )

        assert account == ServiceAccountRef("rotator", "operators")

    def test_discovery_without_environment_fails(self, store, monkeypatch):
        monkeypatch.delenv("POD_NAME", raising=False)
        monkeypatch.delenv("POD_NAMESPACE", raising=False)

        with pytest.raises(ReconcileError):
            SpecValidator(store).discover_self_identity()

    def test_discovery_with_missing_pod_fails(self, store, monkeypatch):
        monkeypatch.setenv("POD_NAME", "rotator-0")
        monkeypatch.setenv("POD_NAMESPACE", "operators")

        with pytest.raises(ReconcileError):
            SpecValidator(store).discover_self_identity()
