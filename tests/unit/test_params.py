"""Tests for operator parameter resolution and substitution."""

from __future__ import annotations

import pytest
from structlog.testing import capture_logs

from infragraph.errors import MissingParameterError, UnknownParameterError
from infragraph.models.resources import ParameterRef, Ref, ResourceDeclaration, ResourceKind
from infragraph.params import ParameterDefinition, ParameterResolver, substitute

_DEFINITIONS = [
    ParameterDefinition("FluxRepoURL", "repository"),
    ParameterDefinition("FluxRepoBranch", "branch", default="main"),
    ParameterDefinition("FluxRepoPath", "path"),
]


class TestResolve:
    def test_supplied_values_and_defaults(self) -> None:
        values = ParameterResolver(_DEFINITIONS).resolve(
            {"FluxRepoURL": "ssh://git@example.com/fleet.git", "FluxRepoPath": "clusters/green"},
            environ={},
        )
        assert values == {
            "FluxRepoURL": "ssh://git@example.com/fleet.git",
            "FluxRepoBranch": "main",
            "FluxRepoPath": "clusters/green",
        }

    def test_supplied_overrides_default(self) -> None:
        values = ParameterResolver(_DEFINITIONS).resolve(
            {"FluxRepoURL": "u", "FluxRepoPath": "p", "FluxRepoBranch": "release"},
            environ={},
        )
        assert values["FluxRepoBranch"] == "release"

    def test_missing_required_fails_closed(self) -> None:
        with pytest.raises(MissingParameterError) as exc_info:
            ParameterResolver(_DEFINITIONS).resolve({"FluxRepoURL": "u"}, environ={})
        assert exc_info.value.missing == ["FluxRepoPath"]

    def test_every_missing_name_is_reported(self) -> None:
        with pytest.raises(MissingParameterError) as exc_info:
            ParameterResolver(_DEFINITIONS).resolve({}, environ={})
        assert exc_info.value.missing == ["FluxRepoPath", "FluxRepoURL"]

    def test_empty_string_counts_as_missing(self) -> None:
        with pytest.raises(MissingParameterError):
            ParameterResolver(_DEFINITIONS).resolve({"FluxRepoURL": "", "FluxRepoPath": "p"}, environ={})

    def test_empty_string_falls_back_to_default_with_warning(self) -> None:
        with capture_logs() as logs:
            values = ParameterResolver(_DEFINITIONS).resolve(
                {"FluxRepoURL": "u", "FluxRepoPath": "p", "FluxRepoBranch": ""},
                environ={},
            )
        assert values["FluxRepoBranch"] == "main"
        (warning,) = [e for e in logs if e["event"] == "parameter_empty_ignored"]
        assert warning["parameter"] == "FluxRepoBranch"
        assert warning["log_level"] == "warning"

    def test_empty_string_does_not_hide_environment(self) -> None:
        values = ParameterResolver(_DEFINITIONS).resolve(
            {"FluxRepoURL": "u", "FluxRepoPath": "p", "FluxRepoBranch": ""},
            environ={"INFRAGRAPH_PARAM_FLUXREPOBRANCH": "release"},
        )
        assert values["FluxRepoBranch"] == "release"

    def test_empty_environment_value_ignored(self) -> None:
        with capture_logs() as logs:
            values = ParameterResolver(_DEFINITIONS).resolve(
                {"FluxRepoURL": "u", "FluxRepoPath": "p"},
                environ={"INFRAGRAPH_PARAM_FLUXREPOBRANCH": ""},
            )
        assert values["FluxRepoBranch"] == "main"
        assert [e["source"] for e in logs if e["event"] == "parameter_empty_ignored"] == [
            "INFRAGRAPH_PARAM_FLUXREPOBRANCH"
        ]

    def test_environment_fallback(self) -> None:
        values = ParameterResolver(_DEFINITIONS).resolve(
            {"FluxRepoURL": "u"},
            environ={"INFRAGRAPH_PARAM_FLUXREPOPATH": "from-env"},
        )
        assert values["FluxRepoPath"] == "from-env"

    def test_supplied_beats_environment(self) -> None:
        values = ParameterResolver(_DEFINITIONS).resolve(
            {"FluxRepoURL": "u", "FluxRepoPath": "cli"},
            environ={"INFRAGRAPH_PARAM_FLUXREPOPATH": "env"},
        )
        assert values["FluxRepoPath"] == "cli"

    def test_unknown_name_rejected(self) -> None:
        with pytest.raises(UnknownParameterError) as exc_info:
            ParameterResolver(_DEFINITIONS).resolve({"FluxRepoURL": "u", "FluxRepoPath": "p", "Typo": "x"}, environ={})
        assert exc_info.value.unknown == ["Typo"]

    def test_required_property(self) -> None:
        assert ParameterDefinition("a").required is True
        assert ParameterDefinition("a", default="").required is False


class TestSubstitute:
    def test_nested_parameter_refs_replaced(self) -> None:
        decl = ResourceDeclaration(
            kind=ResourceKind.ADDON,
            name="flux",
            attributes={
                "repo": {"url": ParameterRef("url"), "paths": [ParameterRef("path"), "static"]},
                "cluster": Ref("cluster", "name"),
            },
        )
        (out,) = substitute([decl], {"url": "https://git", "path": "apps"})
        assert out.attributes["repo"] == {"url": "https://git", "paths": ["apps", "static"]}
        assert out.attributes["cluster"] == Ref("cluster", "name")
        # Original declaration untouched
        assert decl.attributes["repo"]["url"] == ParameterRef("url")

    def test_unresolved_reference_fails(self) -> None:
        decl = ResourceDeclaration(kind=ResourceKind.ADDON, name="flux", attributes={"url": ParameterRef("url")})
        with pytest.raises(MissingParameterError):
            substitute([decl], {})
