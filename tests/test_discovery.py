from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

import gen

from conftest import FIXTURE_GL_XML


def _summary(
    *,
    api: str = "gl",
    version: float = 1.0,
    name: str = "GL_VERSION_1_0",
    required_names: int = 0,
    removed_names: int = 0,
) -> gen.FeatureSummary:
    return gen.FeatureSummary(
        api=api,
        version=version,
        name=name,
        require_count=1,
        remove_count=0 if removed_names == 0 else 1,
        required_names=required_names,
        removed_names=removed_names,
    )


# ===--- gather_feature_summaries ---=== #


def test_gather_feature_summaries_lists_every_feature_in_document_order(
    fixture_registry: gen.Registry,
) -> None:
    summaries = gen.gather_feature_summaries(fixture_registry)

    assert [(s.api, s.version, s.name) for s in summaries] == [
        ("gl", 1.0, "GL_VERSION_1_0"),
        ("gl", 1.1, "GL_VERSION_1_1"),
        ("gl", 2.0, "GL_VERSION_2_0"),
        ("gl", 3.2, "GL_VERSION_3_2"),
        ("gles2", 2.0, "GL_ES_VERSION_2_0"),
    ]


def test_gather_feature_summaries_counts_blocks_and_names(
    fixture_registry: gen.Registry,
) -> None:
    summaries = {s.name: s for s in gen.gather_feature_summaries(fixture_registry)}

    base = summaries["GL_VERSION_1_0"]
    assert (base.require_count, base.remove_count) == (1, 0)
    assert (base.required_names, base.removed_names) == (8, 0)

    core = summaries["GL_VERSION_3_2"]
    assert (core.require_count, core.remove_count) == (1, 1)
    assert (core.required_names, core.removed_names) == (1, 2)


def test_gather_feature_summaries_counts_repeated_names_once(
    make_delta: Callable[..., gen.Delta],
) -> None:
    registry = gen.Registry(
        constants=[],
        functions=[],
        features=[
            gen.Feature(
                api=gen.Api.GL,
                version=1.0,
                require=(
                    make_delta(constants=("GL_A",), functions=("glA",)),
                    make_delta(constants=("GL_A",)),
                ),
                remove=(),
            )
        ],
    )

    (summary,) = gen.gather_feature_summaries(registry)

    assert summary.require_count == 2
    assert summary.required_names == 2
    assert summary.name == ""


# ===--- format_features_table ---=== #


def test_format_features_table_renders_rows() -> None:
    text = gen.format_features_table(
        [
            _summary(required_names=306),
            _summary(version=3.2, name="GL_VERSION_3_2", required_names=67, removed_names=522),
        ],
        "gl.xml",
    )
    lines = text.splitlines()

    assert lines[0] == "Features in gl.xml (gl.xml):"
    assert lines[1] == ""
    assert lines[2].startswith("  gl      1.0   GL_VERSION_1_0")
    assert lines[2].endswith("+306 names      -0 names")
    assert lines[3].endswith("+67 names    -522 names")
    assert text.endswith("\n")


def test_format_features_table_empty_registry() -> None:
    text = gen.format_features_table([], "empty.xml")

    assert "  (none)" in text.splitlines()


# ===--- run_discovery ---=== #


def test_run_discovery_list_features_prints_table(
    capsys: pytest.CaptureFixture[str],
) -> None:
    config = gen.DiscoveryConfig(command="list-features", gl_xml=FIXTURE_GL_XML, fetch=False)

    gen.run_discovery(config)

    out = capsys.readouterr().out
    assert out.startswith(f"Features in gl.xml ({FIXTURE_GL_XML}):")
    assert "GL_VERSION_3_2" in out
    assert "GL_ES_VERSION_2_0" in out


def test_run_discovery_propagates_registry_errors(tmp_path: Path) -> None:
    broken = tmp_path / "gl.xml"
    broken.write_text("<registry><feature", encoding="utf-8")
    config = gen.DiscoveryConfig(command="list-features", gl_xml=broken, fetch=False)

    with pytest.raises(gen.RegistryError) as exc_info:
        gen.run_discovery(config)

    assert exc_info.value.code == "MALFORMED_XML"


def test_run_discovery_fetch_downloads_registry(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    requested: list[tuple[str, float]] = []
    payload = FIXTURE_GL_XML.read_bytes()

    class _Response:
        def __enter__(self) -> _Response:
            return self

        def __exit__(self, *_exc: object) -> None:
            return None

        def read(self) -> bytes:
            return payload

    def _urlopen(url: str, timeout: float) -> _Response:
        requested.append((url, timeout))
        return _Response()

    monkeypatch.setattr(gen.urllib.request, "urlopen", _urlopen)

    gen.run_discovery(gen.DiscoveryConfig(command="list-features", gl_xml=None, fetch=True))

    assert requested == [(gen.REGISTRY_URL, gen.FETCH_TIMEOUT_SECONDS)]
    assert gen.REGISTRY_URL in capsys.readouterr().out
