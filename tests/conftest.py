import argparse
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import gen  # noqa: E402

FIXTURE_GL_XML = GENERATOR_DIR / "tests" / "fixtures" / "gl_minimal.xml"


@pytest.fixture
def existing_paths(tmp_path: Path) -> dict[str, Path]:
    gl_xml = tmp_path / "gl.xml"
    gl_xml.write_text("<registry />\n", encoding="utf-8")

    output_dir = tmp_path / "out"
    return {
        "gl_xml": gl_xml,
        "output_dir": output_dir,
    }


@pytest.fixture
def missing_path(tmp_path: Path) -> Path:
    return tmp_path / "missing"


@pytest.fixture
def make_args(existing_paths: dict[str, Path]) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "api": None,
            "version": None,
            "profile": None,
            "gl_xml": existing_paths["gl_xml"],
            "fetch": False,
            "output_dir": None,
            "no_format": False,
            "list_features": False,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


@pytest.fixture
def make_registry_xml() -> Callable[[str], str]:
    def _make_registry_xml(inner_xml: str) -> str:
        return f"<registry>{inner_xml}</registry>"

    return _make_registry_xml


@pytest.fixture
def parse_inner(make_registry_xml: Callable[[str], str]) -> Callable[[str], gen.Registry]:
    def _parse_inner(inner_xml: str) -> gen.Registry:
        return gen.parse_registry(make_registry_xml(inner_xml))

    return _parse_inner


@pytest.fixture
def fixture_registry() -> gen.Registry:
    return gen.parse_registry(FIXTURE_GL_XML.read_text(encoding="utf-8"))


@pytest.fixture
def make_delta() -> Callable[..., gen.Delta]:
    def _make_delta(
        *,
        constants: tuple[str, ...] = (),
        functions: tuple[str, ...] = (),
        profile: gen.Profile | None = None,
        api: gen.Api | None = None,
    ) -> gen.Delta:
        return gen.Delta(
            profile=profile, api=api, constants=constants, functions=functions
        )

    return _make_delta


@pytest.fixture
def make_function() -> Callable[..., gen.Function]:
    def _make_function(
        name: str,
        params: tuple[tuple[str, str], ...] = (),
        return_type: str = "",
    ) -> gen.Function:
        return gen.Function(
            name=name,
            params=tuple(gen.Parameter(name=n, type=t) for n, t in params),
            return_type=return_type,
        )

    return _make_function
