"""OpenGL FFI bindings generator for Rust.

Reduces the Khronos gl.xml registry to one api/version/profile target and
writes a small Rust crate (src/gl.rs, src/lib.rs, Cargo.toml) with the
constants, function pointer loader and call wrappers for that target.

Usage:
    python gen.py --api gl --version 4.6 --profile core --output-dir angel
    python gen.py --fetch --list-features
"""

import argparse
import math
import subprocess
import sys
import urllib.request
import xml.etree.ElementTree as ET
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TypeVar

PROJECT_ROOT = Path(__file__).parent
DEFAULT_GL_XML = PROJECT_ROOT / "OpenGL-Registry" / "xml" / "gl.xml"
REGISTRY_URL = "https://github.com/KhronosGroup/OpenGL-Registry/raw/main/xml/gl.xml"
FETCH_TIMEOUT_SECONDS = 60

DEFAULT_API = "gl"
DEFAULT_VERSION = "4.6"
DEFAULT_PROFILE = "core"


# ===--- Registry errors ---=== #


VALID_REGISTRY_ERROR_CODES = {
    "MALFORMED_XML",
    "MISSING_ATTRIBUTE",
    "MISSING_ELEMENT",
    "DUPLICATE_ELEMENT",
    "UNKNOWN_TAG",
    "UNTYPED_PARAM",
    "INVALID_API",
    "INVALID_PROFILE",
    "INVALID_VERSION",
}
REGISTRY_VALUE_ERROR_CODES = frozenset(
    {"INVALID_API", "INVALID_PROFILE", "INVALID_VERSION"}
)


class RegistryError(Exception):
    """The registry document does not match the schema this generator knows.

    Every code except the value codes marks a structural problem (markup,
    missing attribute or child, tag outside a closed table). Value codes mark
    an attribute holding text outside a closed enumeration.
    """

    def __init__(self, code: str, message: str):
        if code not in VALID_REGISTRY_ERROR_CODES:
            raise ValueError(f"Unknown registry error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message

    @property
    def is_value_error(self) -> bool:
        return self.code in REGISTRY_VALUE_ERROR_CODES


# ===--- Target identifiers ---=== #


class Api(Enum):
    GL = "gl"
    GLES1 = "gles1"
    GLES2 = "gles2"
    GLSC2 = "glsc2"

    @property
    def tag(self) -> str:
        return self.value

    @classmethod
    def from_tag(cls, tag: str) -> "Api":
        try:
            return cls(tag)
        except ValueError:
            raise RegistryError("INVALID_API", f"Unknown api: {tag!r}") from None


class Profile(Enum):
    CORE = "core"
    COMPATIBILITY = "compatibility"
    COMMON = "common"

    @property
    def tag(self) -> str:
        return self.value

    @classmethod
    def from_tag(cls, tag: str) -> "Profile":
        try:
            return cls(tag)
        except ValueError:
            raise RegistryError(
                "INVALID_PROFILE", f"Unknown profile: {tag!r}"
            ) from None


def parse_version_number(raw: str) -> float:
    """Parse a feature `number` attribute such as "4.6"."""
    try:
        version = float(raw)
    except ValueError:
        raise RegistryError("INVALID_VERSION", f"Invalid version: {raw!r}") from None
    if not math.isfinite(version):
        raise RegistryError("INVALID_VERSION", f"Invalid version: {raw!r}")
    return version


@dataclass(frozen=True)
class Target:
    """The one api/version/profile selection a generation run reduces to."""

    api: Api
    version: float
    profile: Profile

    def __str__(self) -> str:
        return f"{self.api.tag} {self.version} {self.profile.tag}"


# ===--- CLI config contracts ---=== #


@dataclass(frozen=True)
class GenerateConfig:
    target: Target
    gl_xml: Path | None
    fetch: bool
    output_dir: Path
    run_formatter: bool


@dataclass(frozen=True)
class DiscoveryConfig:
    command: str
    gl_xml: Path | None
    fetch: bool


VALID_ERROR_CODES = {
    "INVALID_API",
    "INVALID_PROFILE",
    "INVALID_VERSION",
    "MISSING_OUTPUT_DIR",
    "CONFLICT_GENERATE_DISCOVERY",
    "PATH_NOT_FOUND",
}

_API_TAGS = ", ".join(api.tag for api in Api)
_PROFILE_TAGS = ", ".join(profile.tag for profile in Profile)


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def parse_api(raw: str) -> Api:
    try:
        return Api.from_tag(raw)
    except RegistryError as err:
        raise ConfigError(
            "INVALID_API", f"Unsupported api: {raw}", f"Use one of: {_API_TAGS}."
        ) from err


def parse_profile(raw: str) -> Profile:
    try:
        return Profile.from_tag(raw)
    except RegistryError as err:
        raise ConfigError(
            "INVALID_PROFILE",
            f"Unsupported profile: {raw}",
            f"Use one of: {_PROFILE_TAGS}.",
        ) from err


def parse_version(raw: str) -> float:
    try:
        return parse_version_number(raw)
    except RegistryError as err:
        raise ConfigError(
            "INVALID_VERSION",
            f"Invalid version: {raw}",
            "Pass a decimal version such as 3.3 or 4.6.",
        ) from err


def validate_path_exists(
    path: Path | None, flag: str, suggestion: str | None = None
) -> Path:
    if path is None:
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"{flag} is required: no path provided.",
            suggestion or f"Pass the path explicitly: {flag} /path/to/resource",
        )
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Path for {flag} does not exist: {path}",
        suggestion or "Provide an existing path for this flag.",
    )


_GL_XML_SUGGESTION = (
    "Clone OpenGL-Registry next to gen.py:\n"
    "  git clone https://github.com/KhronosGroup/OpenGL-Registry.git\n"
    "Or pass a custom path: --gl-xml /your/path/to/gl.xml\n"
    "Or download the latest registry: --fetch"
)


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate OpenGL bindings for Rust")

    parser.add_argument("--api", type=str, default=None)
    parser.add_argument("--version", type=str, default=None)
    parser.add_argument("--profile", type=str, default=None)

    parser.add_argument("--gl-xml", type=Path, default=DEFAULT_GL_XML)
    parser.add_argument("--fetch", action="store_true", default=False)
    parser.add_argument("--output-dir", type=Path, default=None)
    parser.add_argument("--no-format", action="store_true", default=False)

    parser.add_argument("--list-features", action="store_true", default=False)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def _resolve_registry_path(args: argparse.Namespace) -> Path | None:
    # --gl-xml is ignored when fetching.
    if args.fetch:
        return None
    return validate_path_exists(args.gl_xml, "--gl-xml", _GL_XML_SUGGESTION)


def validate_config(args: argparse.Namespace) -> GenerateConfig | DiscoveryConfig:
    has_generate_input = bool(
        args.api or args.version or args.profile or args.output_dir or args.no_format
    )

    if has_generate_input and args.list_features:
        raise ConfigError(
            "CONFLICT_GENERATE_DISCOVERY",
            "Generate flags cannot be combined with --list-features.",
            "Choose either generate mode or --list-features.",
        )

    if args.list_features:
        return DiscoveryConfig(
            command="list-features",
            gl_xml=_resolve_registry_path(args),
            fetch=bool(args.fetch),
        )

    target = Target(
        api=parse_api(args.api or DEFAULT_API),
        version=parse_version(args.version or DEFAULT_VERSION),
        profile=parse_profile(args.profile or DEFAULT_PROFILE),
    )

    if args.output_dir is None:
        raise ConfigError(
            "MISSING_OUTPUT_DIR",
            "Generate mode requires --output-dir.",
            "Pass the folder for the generated crate: --output-dir /path/to/crate",
        )

    gl_xml = _resolve_registry_path(args)
    return GenerateConfig(
        target=target,
        gl_xml=gl_xml,
        fetch=bool(args.fetch),
        output_dir=args.output_dir,
        run_formatter=not args.no_format,
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig | DiscoveryConfig:
    return validate_config(parse_args(argv))


# ===--- Constants ---=== #

RUST_RESERVED = frozenset(
    {
        "as", "break", "const", "continue", "crate", "else", "enum", "extern",
        "false", "fn", "for", "if", "impl", "in", "let", "loop", "match", "mod",
        "move", "mut", "pub", "ref", "return", "self", "Self", "static",
        "struct", "super", "trait", "true", "type", "unsafe", "use", "where",
        "while", "async", "await", "dyn", "abstract", "become", "box", "do",
        "final", "macro", "override", "priv", "typeof", "unsized", "virtual",
        "yield", "try",
    }
)  # fmt: skip

# OpenCL interop structs that gl.xml spells as C struct tags.
OPAQUE_STRUCT_TYPES = {
    "struct _cl_context": "*mut _cl_context",
    "struct _cl_event": "*mut _cl_event",
}

# Parameters without a <ptype>; the registry only uses these forms.
UNTYPED_POINTER_TYPES = {
    "const void *": "*const c_void",
    "const void **": "*const *const c_void",
    "const void *const*": "*const *const c_void",
    "void *": "*mut c_void",
    "void **": "*mut *mut c_void",
}

# Negative token values outside the normal enum scheme.
SKIPPED_ENUM_GROUPS = frozenset({"TransformFeedbackTokenNV"})

IGNORED_COMMAND_CHILDREN = frozenset({"alias", "glx", "vecequiv"})
DELTA_TAGS = ("require", "remove")
IGNORED_DELTA_CHILDREN = frozenset({"type"})


# ===--- Data classes ---=== #


@dataclass(frozen=True)
class Constant:
    name: str
    value: str
    is_bitmask: bool
    group: str | None = None
    # Raw <enum api="..."> tag; the registry repeats a name once per api.
    api: str | None = None


@dataclass(frozen=True)
class Parameter:
    name: str
    type: str


@dataclass(frozen=True)
class Function:
    name: str
    params: tuple[Parameter, ...]
    return_type: str


@dataclass(frozen=True)
class Delta:
    """One <require> or <remove> block of a feature.

    Attributes:
        profile: Profile filter, or None to match every profile.
        api: Api filter, or None to match every api.
        constants: Referenced constant names, in document order.
        functions: Referenced function names, in document order.
    """

    profile: Profile | None
    api: Api | None
    constants: tuple[str, ...]
    functions: tuple[str, ...]


@dataclass(frozen=True)
class Feature:
    api: Api
    version: float
    require: tuple[Delta, ...]
    remove: tuple[Delta, ...]
    name: str = ""


@dataclass
class Registry:
    """Parsed registry model.

    Built once by parse_registry. reduce_registry prunes the three lists in
    place; nothing else mutates them.
    """

    constants: list[Constant]
    functions: list[Function]
    features: list[Feature]


# ===--- XML parsing ---=== #


def _require_attr(element: ET.Element, attr: str) -> str:
    value = element.get(attr)
    if value is None:
        raise RegistryError(
            "MISSING_ATTRIBUTE",
            f"<{element.tag}> is missing required attribute '{attr}'",
        )
    return value


def _require_child_text(element: ET.Element, tag: str) -> str:
    child = element.find(tag)
    if child is None or child.text is None:
        raise RegistryError(
            "MISSING_ELEMENT", f"<{element.tag}> is missing a <{tag}> child"
        )
    return child.text


def _has_leading_const(element: ET.Element) -> bool:
    return (element.text or "").strip() == "const"


def parse_enums_block(block: ET.Element) -> list[Constant]:
    """Parse one <enums> block into Constants.

    The block's type="bitmask" is inherited by every constant it holds.
    Blocks whose group is in SKIPPED_ENUM_GROUPS yield nothing.
    """
    if block.get("group") in SKIPPED_ENUM_GROUPS:
        return []

    is_bitmask = block.get("type") == "bitmask"
    constants = []
    for child in block:
        if child.tag != "enum":
            continue
        constants.append(
            Constant(
                name=_require_attr(child, "name"),
                value=_require_attr(child, "value"),
                is_bitmask=is_bitmask,
                group=child.get("group"),
                api=child.get("api"),
            )
        )
    return constants


def rename_opaque_type(type_text: str) -> str:
    text = type_text.strip()
    return OPAQUE_STRUCT_TYPES.get(text, text)


def parse_return_type(proto: ET.Element) -> str:
    """Return the "->T" descriptor of a <proto>, or "" when it has no <ptype>.

    A leading "const" token makes the result a pointer to const. Prototypes
    spelled without <ptype> (e.g. "void *") count as returning nothing.
    """
    ptype = proto.find("ptype")
    if ptype is None:
        return ""
    base = rename_opaque_type(ptype.text or "")
    if _has_leading_const(proto):
        base = f"*const {base}"
    return f"->{base}" if base else ""


def parse_param_type(param: ET.Element) -> str:
    """Derive the Rust type descriptor of a <param>.

    Args:
        param: The <param> element.

    Returns:
        Descriptor such as "GLenum", "*mut GLuint", "*const GLchar",
        "*const *const GLchar" or "*mut c_void".

    Raises:
        RegistryError: UNTYPED_PARAM when the param has no <ptype> and its
            text is not one of UNTYPED_POINTER_TYPES.
    """
    ptype = param.find("ptype")
    if ptype is None:
        raw = (param.text or "").strip()
        try:
            return UNTYPED_POINTER_TYPES[raw]
        except KeyError:
            raise RegistryError(
                "UNTYPED_PARAM", f"Couldn't find a valid type for param text {raw!r}"
            ) from None

    base = rename_opaque_type(ptype.text or "")
    tail = (ptype.tail or "").strip()
    if tail == "*":
        if _has_leading_const(param):
            return f"*const {base}"
        return f"*mut {base}"
    if tail == "*const*":
        return f"*const *const {base}"
    return base


def escape_identifier(name: str) -> str:
    if name in RUST_RESERVED:
        return f"r#{name}"
    return name


def parse_param(param: ET.Element) -> Parameter:
    name = _require_child_text(param, "name")
    return Parameter(name=escape_identifier(name), type=parse_param_type(param))


def parse_command(command: ET.Element) -> Function:
    """Parse one <command> into a Function.

    Children other than <proto> and <param> are skipped; the schema is large
    and alias/glx/vecequiv carry nothing the bindings use.
    """
    proto: ET.Element | None = None
    params: list[Parameter] = []
    for child in command:
        if child.tag == "proto":
            if proto is not None:
                raise RegistryError(
                    "DUPLICATE_ELEMENT", "<command> has more than one <proto>"
                )
            proto = child
        elif child.tag == "param":
            params.append(parse_param(child))
        elif child.tag in IGNORED_COMMAND_CHILDREN:
            continue

    if proto is None:
        raise RegistryError("MISSING_ELEMENT", "<command> is missing a <proto> child")

    return Function(
        name=_require_child_text(proto, "name"),
        params=tuple(params),
        return_type=parse_return_type(proto),
    )


def parse_commands_block(block: ET.Element) -> list[Function]:
    return [parse_command(child) for child in block if child.tag == "command"]


def parse_delta(block: ET.Element) -> Delta:
    profile = block.get("profile")
    api = block.get("api")
    names: dict[str, list[str]] = {"enum": [], "command": []}
    for child in block:
        if child.tag in names:
            names[child.tag].append(_require_attr(child, "name"))
        elif child.tag not in IGNORED_DELTA_CHILDREN:
            raise RegistryError(
                "UNKNOWN_TAG", f"Unknown tag <{child.tag}> in <{block.tag}>"
            )
    return Delta(
        profile=Profile.from_tag(profile) if profile is not None else None,
        api=Api.from_tag(api) if api is not None else None,
        constants=tuple(names["enum"]),
        functions=tuple(names["command"]),
    )


def parse_feature(node: ET.Element) -> Feature:
    """Parse one <feature> with its require/remove deltas in document order.

    Raises:
        RegistryError: On a missing api/number attribute, an invalid api,
            profile or number, or any child other than require/remove.
    """
    api = Api.from_tag(_require_attr(node, "api"))
    version = parse_version_number(_require_attr(node, "number"))
    deltas: dict[str, list[Delta]] = {tag: [] for tag in DELTA_TAGS}
    for child in node:
        if child.tag not in deltas:
            raise RegistryError(
                "UNKNOWN_TAG", f"Unknown tag <{child.tag}> in <feature>"
            )
        deltas[child.tag].append(parse_delta(child))
    return Feature(
        api=api,
        version=version,
        require=tuple(deltas["require"]),
        remove=tuple(deltas["remove"]),
        name=node.get("name", ""),
    )


def parse_registry(xml_text: str) -> Registry:
    """Build the full registry model from gl.xml text.

    Walks the direct children of the root element once. <enums>, <commands>
    and <feature> are parsed; every other top-level tag is ignored.

    Args:
        xml_text: Complete registry document.

    Returns:
        Registry with every constant, function and feature in document order.

    Raises:
        RegistryError: On malformed markup or any schema deviation. No partial
            model is returned.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as err:
        raise RegistryError("MALFORMED_XML", f"Failed to parse registry: {err}") from err

    constants: list[Constant] = []
    functions: list[Function] = []
    features: list[Feature] = []
    for node in root:
        if node.tag == "enums":
            constants.extend(parse_enums_block(node))
        elif node.tag == "commands":
            functions.extend(parse_commands_block(node))
        elif node.tag == "feature":
            features.append(parse_feature(node))

    return Registry(constants=constants, functions=functions, features=features)


# ===--- Feature reduction ---=== #


TypeT = TypeVar("TypeT")


def filter_by_target(
    items: list[TypeT],
    target_set: set[str] | frozenset[str],
    key: Callable[[TypeT], str],
) -> list[TypeT]:
    """Return a new list of items whose key is a member of target_set.

    Preserves the original input order. Non-mutating.
    """
    return [item for item in items if key(item) in target_set]


def delta_matches(delta: Delta, api: Api, profile: Profile) -> bool:
    """Absent filters match everything; present filters must match exactly."""
    return (delta.profile is None or delta.profile == profile) and (
        delta.api is None or delta.api == api
    )


def reduce_registry(
    registry: Registry, api: Api, version: float, profile: Profile
) -> None:
    """Prune registry in place down to what one api/version/profile needs.

    Features of other apis or above version are dropped. The rest are walked
    in document order, not sorted by version: per feature, every matching
    require delta adds its names, then every matching remove delta takes
    names out again, so a later feature overrides an earlier one. Constants
    and functions are finally filtered to the surviving names. Constants
    are matched by name only, so every api variant of a name survives.

    Reducing an already reduced registry with the same target is a no-op.
    """
    registry.features[:] = [
        feature
        for feature in registry.features
        if feature.api == api and feature.version <= version
    ]

    required_constants: set[str] = set()
    required_functions: set[str] = set()
    for feature in registry.features:
        for delta in feature.require:
            if delta_matches(delta, api, profile):
                required_constants.update(delta.constants)
                required_functions.update(delta.functions)
        for delta in feature.remove:
            if delta_matches(delta, api, profile):
                required_constants.difference_update(delta.constants)
                required_functions.difference_update(delta.functions)

    registry.constants[:] = filter_by_target(
        registry.constants, required_constants, key=lambda c: c.name
    )
    registry.functions[:] = filter_by_target(
        registry.functions, required_functions, key=lambda f: f.name
    )


# ===--- Registry source ---=== #


def load_registry_text(source: Path | None, fetch: bool) -> str:
    """Return the registry document, downloaded or read from disk.

    Raises:
        OSError: File not readable, or download failure (URLError).
        ValueError: No source path given without fetch.
    """
    if fetch:
        with urllib.request.urlopen(
            REGISTRY_URL, timeout=FETCH_TIMEOUT_SECONDS
        ) as response:
            return response.read().decode("utf-8")
    if source is None:
        raise ValueError("A registry path is required unless fetching")
    return Path(source).read_text(encoding="utf-8")


def describe_source(source: Path | None, fetch: bool) -> str:
    return REGISTRY_URL if fetch else str(source)


# ===--- Discovery ---=== #


@dataclass(frozen=True)
class FeatureSummary:
    """One row of the --list-features table.

    Attributes:
        api: Feature api tag, e.g. "gles2".
        version: Feature version number.
        name: Feature name, e.g. "GL_VERSION_3_2", or "" if absent.
        require_count: Number of <require> blocks.
        remove_count: Number of <remove> blocks.
        required_names: Distinct names referenced by require blocks.
        removed_names: Distinct names referenced by remove blocks.
    """

    api: str
    version: float
    name: str
    require_count: int
    remove_count: int
    required_names: int
    removed_names: int


def _distinct_names(deltas: tuple[Delta, ...]) -> int:
    names: set[str] = set()
    for delta in deltas:
        names.update(delta.constants)
        names.update(delta.functions)
    return len(names)


def gather_feature_summaries(registry: Registry) -> list[FeatureSummary]:
    """Return one FeatureSummary per feature, in document order."""
    return [
        FeatureSummary(
            api=feature.api.tag,
            version=feature.version,
            name=feature.name,
            require_count=len(feature.require),
            remove_count=len(feature.remove),
            required_names=_distinct_names(feature.require),
            removed_names=_distinct_names(feature.remove),
        )
        for feature in registry.features
    ]


def format_features_table(summaries: list[FeatureSummary], source_label: str) -> str:
    """Return the complete --list-features output.

    Output format:

        Features in gl.xml (path/to/gl.xml):

          gl      1.0   GL_VERSION_1_0           +306 names      -0 names
          gl      3.2   GL_VERSION_3_2            +67 names    -522 names
    """
    lines = [f"Features in gl.xml ({source_label}):", ""]
    if not summaries:
        lines.append("  (none)")
    for row in summaries:
        added = f"+{row.required_names} names"
        removed = f"-{row.removed_names} names"
        lines.append(
            f"  {row.api:<7} {str(row.version):<5} {row.name:<24} {added:>12} {removed:>13}"
        )
    lines.append("")
    return "\n".join(lines)


def run_discovery(config: DiscoveryConfig) -> None:
    """Execute the discovery command specified in config.

    Registry errors propagate; main() reports them.
    """
    registry = parse_registry(load_registry_text(config.gl_xml, config.fetch))
    if config.command == "list-features":
        summaries = gather_feature_summaries(registry)
        source_label = describe_source(config.gl_xml, config.fetch)
        print(format_features_table(summaries, source_label), end="")


# ===--- Rust emitter ---=== #

GL_TYPES_SOURCE = """\
#[cfg(not(feature = "std"))]
use core::ffi::{c_char, c_double, c_float, c_int, c_short, c_uchar, c_uint, c_ushort, c_void};

#[cfg(feature = "std")]
use std::os::raw::{
    c_char, c_double, c_float, c_int, c_short, c_uchar, c_uint, c_ushort, c_void,
};

pub type GLvoid = c_void;
pub type GLbyte = c_char;
pub type GLubyte = c_uchar;
pub type GLchar = c_char;
pub type GLboolean = c_uchar;
pub type GLshort = c_short;
pub type GLushort = c_ushort;
pub type GLint = c_int;
pub type GLuint = c_uint;
pub type GLint64 = i64;
pub type GLuint64 = u64;
pub type GLintptr = isize;
pub type GLsizeiptr = isize;
pub type GLintptrARB = isize;
pub type GLsizeiptrARB = isize;
pub type GLint64EXT = i64;
pub type GLuint64EXT = u64;
pub type GLsizei = GLint;
pub type GLclampx = c_int;
pub type GLfixed = GLint;
pub type GLhalf = c_ushort;
pub type GLhalfNV = c_ushort;
pub type GLhalfARB = c_ushort;
pub type GLenum = c_uint;
pub type GLbitfield = c_uint;
pub type GLfloat = c_float;
pub type GLdouble = c_double;
pub type GLclampf = c_float;
pub type GLclampd = c_double;
pub type GLcharARB = c_char;
#[cfg(target_os = "macos")]
pub type GLhandleARB = *const c_void;
#[cfg(not(target_os = "macos"))]
pub type GLhandleARB = c_uint;
pub enum __GLsync {}
pub type GLsync = *const __GLsync;
pub enum _cl_context {}
pub enum _cl_event {}
pub type GLvdpauSurfaceNV = GLintptr;
pub type GLeglClientBufferEXT = *const c_void;
pub type GLeglImageOES = *const c_void;
pub type GLDEBUGPROC = extern "system" fn(
    source: GLenum,
    type_: GLenum,
    id: GLuint,
    severity: GLenum,
    length: GLsizei,
    message: *const GLchar,
    userParam: *mut c_void,
);
pub type GLDEBUGPROCARB = extern "system" fn(
    source: GLenum,
    type_: GLenum,
    id: GLuint,
    severity: GLenum,
    length: GLsizei,
    message: *const GLchar,
    userParam: *mut c_void,
);
pub type GLDEBUGPROCKHR = extern "system" fn(
    source: GLenum,
    type_: GLenum,
    id: GLuint,
    severity: GLenum,
    length: GLsizei,
    message: *const GLchar,
    userParam: *mut GLvoid,
);
pub type GLDEBUGPROCAMD = extern "system" fn(
    id: GLuint,
    category: GLenum,
    severity: GLenum,
    length: GLsizei,
    message: *const GLchar,
    userParam: *mut GLvoid,
);
pub type GLVULKANPROCNV = extern "system" fn();"""

BINDINGS_PRELUDE = """\
#![allow(bad_style)]
#![allow(clippy::too_many_arguments)]
#![allow(clippy::missing_safety_doc)]
#![allow(clippy::upper_case_acronyms)]

#[cfg(not(feature = "std"))]
use core::{
    ffi::{c_void, CStr},
    fmt::Display,
    mem::transmute,
};
#[cfg(feature = "std")]
use std::{ffi::CStr, fmt::Display, mem::transmute, os::raw::c_void};

#[cfg(all(feature = "tracing", feature = "trace-calls"))]
use tracing::trace;

pub type Result<T, E = LoadError> = core::result::Result<T, E>;

#[derive(Debug)]
pub struct LoadError {
    pub name: &'static str,
    pub pointer: usize,
}

#[cfg(feature = "std")]
impl std::error::Error for LoadError {}

impl Display for LoadError {
    fn fmt(&self, f: &mut core::fmt::Formatter<'_>) -> core::fmt::Result {
        write!(
            f,
            "Failed to load function \\"{}\\", expected a valid pointer instead got {}",
            self.name, self.pointer
        )
    }
}"""

LOADER_PRELUDE = """\
    pub unsafe fn load<F>(mut loader_function: F) -> Result<Self>
    where
        F: FnMut(&CStr) -> *const c_void,
    {
        let mut load_pointer = |name: &'static [u8]| -> Result<*const c_void> {
            let pointer = loader_function(CStr::from_bytes_with_nul_unchecked(name));
            let pointer_usize = pointer as usize;

            if pointer_usize == core::usize::MAX || pointer_usize < 8 {
                Err(LoadError {
                    name: core::str::from_utf8_unchecked(&name[..name.len() - 1]),
                    pointer: pointer_usize,
                })
            } else {
                Ok(pointer)
            }
        };
"""

LIB_RS_SOURCE = """\
#![cfg_attr(not(feature = "std"), no_std)]

pub mod gl;
pub use gl::*;
"""

_HEADER_BANNER = (
    "/*",
    "    DO NOT MANUALLY EDIT THIS FILE.",
    "    EDITING THIS FILES CAN LEAD TO SAFETY BUGS AND MEMORY CORRUPTION.",
)

WIDE_SENTINEL_VALUE = "0xFFFFFFFFFFFFFFFF"
DEBUG_CALLBACK_TYPE = "GLDEBUGPROC"


def rust_constant_type(constant: Constant) -> str:
    """Bitmasks are GLbitfield; the 64-bit sentinel needs u64; the rest are GLenum."""
    if constant.is_bitmask:
        return "GLbitfield"
    if constant.value == WIDE_SENTINEL_VALUE:
        return "u64"
    return "GLenum"


def format_constant(constant: Constant) -> str:
    return (
        f"pub const {constant.name}: {rust_constant_type(constant)} = {constant.value};"
    )


def select_constant_variants(constants: list[Constant], api: Api) -> list[Constant]:
    """Return one constant per name, in first-seen order.

    A name declared once per api keeps the variant tagged for `api`; without
    one, the first declaration wins.
    """
    chosen: dict[str, Constant] = {}
    for constant in constants:
        current = chosen.get(constant.name)
        if current is None or (current.api != api.tag and constant.api == api.tag):
            chosen[constant.name] = constant
    return list(chosen.values())


def _param_types(function: Function) -> str:
    return ",".join(p.type for p in function.params)


def format_fn_pointer_type(function: Function) -> str:
    return f'extern "system" fn({_param_types(function)}){function.return_type}'


def format_loader_field(function: Function) -> str:
    # Signature on its own line; rustfmt gives up on overlong field lines.
    return (
        f'    {function.name}: extern "system" fn\n'
        f"        ({_param_types(function)}){function.return_type}"
    )


def format_loader_constructor(function: Function) -> str:
    return (
        f"            {function.name}: transmute::<*const c_void,\n"
        f"                {format_fn_pointer_type(function)}>\n"
        f'                (load_pointer(b"{function.name}\\0")?)'
    )


def trace_placeholder(param_type: str) -> str:
    if param_type == "GLenum":
        return "{:#X}"
    if "*" in param_type:
        return "{:p}"
    return "{:?}"


def trace_argument(param: Parameter) -> str:
    if param.type == DEBUG_CALLBACK_TYPE:
        return f"transmute::<_, Option<fn()>>({param.name})"
    return param.name


def method_name(function: Function) -> str:
    if not function.name.startswith("gl"):
        raise ValueError(f"Function name lacks the 'gl' prefix: {function.name}")
    return function.name[len("gl"):]


def format_method(function: Function) -> list[str]:
    """Return the lines of the safe-ish wrapper method for one function.

    The wrapper drops the "gl" prefix, traces its arguments when the
    tracing features are on, and forwards to the loaded pointer.

    Raises:
        ValueError: If the function name does not start with "gl".
    """
    name = method_name(function)
    params = ",".join(f"{p.name}:{p.type}" for p in function.params)
    arguments = ",".join(p.name for p in function.params)
    placeholders = ", ".join(trace_placeholder(p.type) for p in function.params)
    trace_args = ",".join(trace_argument(p) for p in function.params)
    trace_call = f'trace!("Calling gl{name}({placeholders})"'
    trace_call += f", {trace_args});" if function.params else ");"
    return [
        f"    pub unsafe fn {name}(&self,{params}){function.return_type} {{",
        '        #[cfg(all(debug_assertions, feature = "tracing", feature = "trace-calls"))]',
        f"        {trace_call}",
        f"        (self.{function.name})({arguments})",
        "    }",
    ]


def format_file_header(target: Target) -> list[str]:
    return [
        *_HEADER_BANNER,
        "",
        f"    OpenGL {target} bindings generated by gl-bindings-gen.",
        "*/",
    ]


def assemble_bindings_source(registry: Registry, target: Target) -> str:
    """Assemble the complete gl.rs source for a reduced registry.

    File structure:
        <header comment>
        <lint allows, imports, LoadError>
        pub mod types { ... }       <- fixed GL type aliases
        pub mod enums { ... }       <- one const per constant name
        pub struct Gl { ... }       <- one fn pointer field per function
        impl Gl { load(); one wrapper per function }

    Args:
        registry: Reduced registry.
        target: Target the registry was reduced to (header only).

    Returns:
        Rust source string including trailing newline.

    Raises:
        ValueError: Propagated from format_method.
    """
    parts: list[str] = list(format_file_header(target))
    parts.append("")
    parts.append(BINDINGS_PRELUDE)
    parts.append("")
    parts.append("pub use types::*;")
    parts.append("pub mod types {")
    parts.append(GL_TYPES_SOURCE)
    parts.append("}")
    parts.append("")
    parts.append("pub use enums::*;")
    parts.append("pub mod enums {")
    parts.append("    use super::*;")
    constants = select_constant_variants(registry.constants, target.api)
    parts.extend(f"    {format_constant(c)}" for c in constants)
    parts.append("}")
    parts.append("")
    parts.append("pub struct Gl {")
    parts.extend(f"{format_loader_field(f)}," for f in registry.functions)
    parts.append("}")
    parts.append("")
    parts.append("impl Gl {")
    parts.append(LOADER_PRELUDE)
    parts.append("        Ok(Self {")
    parts.extend(f"{format_loader_constructor(f)}," for f in registry.functions)
    parts.append("        })")
    parts.append("    }")
    for function in registry.functions:
        parts.append("")
        parts.extend(format_method(function))
    parts.append("}")
    return "\n".join(parts) + "\n"


def assemble_cargo_toml(target: Target, crate_name: str = "gl-bindings") -> str:
    return "\n".join(
        [
            "[package]",
            f'name = "{crate_name}"',
            'version = "0.1.0"',
            'edition = "2021"',
            f'description = "OpenGL {target} bindings generated from gl.xml"',
            "",
            "[features]",
            'default = ["std"]',
            "std = []",
            "trace-calls = []",
            "",
            "[dependencies]",
            'tracing = { version = "0.1", optional = true, default-features = false }',
        ]
    ) + "\n"


# ===--- Crate writer ---=== #


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing a single generated file.

    Attributes:
        filename: Path relative to the crate root, e.g. "src/gl.rs".
        path: Absolute path of the written file.
        line_count: Number of newline characters in the written content.
        byte_count: Number of bytes written (UTF-8 encoded).
    """

    filename: str
    path: Path
    line_count: int
    byte_count: int


@dataclass(frozen=True)
class CrateWriteResult:
    output_dir: Path
    files: tuple[FileWriteResult, ...]

    @property
    def total_lines(self) -> int:
        """Sum of line_count across all written files."""
        return sum(f.line_count for f in self.files)


def write_file(output_dir: Path, filename: str, content: str) -> FileWriteResult:
    file_path = Path(output_dir) / filename
    file_path.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode("utf-8")
    file_path.write_bytes(data)
    return FileWriteResult(
        filename=filename,
        path=file_path.resolve(),
        line_count=content.count("\n"),
        byte_count=len(data),
    )


def write_crate(output_dir: Path, target: Target, registry: Registry) -> CrateWriteResult:
    """Write src/gl.rs, src/lib.rs and Cargo.toml for a reduced registry.

    Existing files are overwritten; nothing else in output_dir is touched.
    OSError propagates without rollback.
    """
    files = (
        write_file(output_dir, "src/gl.rs", assemble_bindings_source(registry, target)),
        write_file(output_dir, "src/lib.rs", LIB_RS_SOURCE),
        write_file(output_dir, "Cargo.toml", assemble_cargo_toml(target)),
    )
    return CrateWriteResult(output_dir=Path(output_dir), files=files)


def run_formatter(output_dir: Path) -> bool:
    """Run `cargo fmt` inside the generated crate. Failure is not fatal."""
    try:
        subprocess.run(
            ["cargo", "fmt"],
            cwd=output_dir,
            check=True,
            capture_output=True,
            text=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        print("  Failed to format code")
        return False
    print("  Ran cargo fmt on generated code successfully")
    return True


# ===--- Pipeline ---=== #


def run_generate(config: GenerateConfig) -> CrateWriteResult:
    """Execute the complete generation pipeline for a GenerateConfig.

    load -> parse -> reduce -> write -> format -> summary.

    Raises:
        OSError: Registry not readable, download failure or write failure.
        RegistryError: Registry does not match the known schema.
        ValueError: A function name the emitter cannot wrap.
    """
    source_label = describe_source(config.gl_xml, config.fetch)
    print(f"Loading: {source_label}")
    xml_text = load_registry_text(config.gl_xml, config.fetch)

    registry = parse_registry(xml_text)
    print(
        f"  Registry: {len(registry.constants)} constants, "
        f"{len(registry.functions)} functions, {len(registry.features)} features"
    )

    target = config.target
    reduce_registry(registry, target.api, target.version, target.profile)
    print(
        f"  Target {target}: {len(registry.constants)} constants, "
        f"{len(registry.functions)} functions"
    )

    result = write_crate(config.output_dir, target, registry)
    print(
        f"  Written: {len(result.files)} files, "
        f"{result.total_lines} lines to {result.output_dir}"
    )

    if config.run_formatter:
        run_formatter(config.output_dir)

    summary = build_generation_summary(target, source_label, registry, result)
    print_generation_summary(summary)

    return result


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class GenerationSummary:
    """Data for the post-generation console report.

    Attributes:
        target_label: e.g. "gl 4.6 core".
        source_label: Registry path or download URL.
        output_dir: Crate directory as string.
        feature_count: Features that survived reduction.
        constant_count: Constants emitted.
        bitmask_count: Constants emitted as GLbitfield.
        function_count: Functions emitted.
        files: Ordered write results.
    """

    target_label: str
    source_label: str
    output_dir: str
    feature_count: int
    constant_count: int
    bitmask_count: int
    function_count: int
    files: tuple[FileWriteResult, ...]


def build_generation_summary(
    target: Target,
    source_label: str,
    registry: Registry,
    write_result: CrateWriteResult,
) -> GenerationSummary:
    return GenerationSummary(
        target_label=str(target),
        source_label=source_label,
        output_dir=str(write_result.output_dir),
        feature_count=len(registry.features),
        constant_count=len(registry.constants),
        bitmask_count=sum(1 for c in registry.constants if c.is_bitmask),
        function_count=len(registry.functions),
        files=write_result.files,
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    """Render a GenerationSummary; one trailing newline, thousands separators."""
    lines: list[str] = []
    lines.append("OpenGL bindings generated:")
    lines.append("")
    lines.append(f"  Target:     {summary.target_label}")
    lines.append(f"  Source:     {summary.source_label}")
    lines.append(f"  Output:     {summary.output_dir}")
    lines.append("")
    lines.append("  Reduced registry:")
    lines.append(f"    {'Features:':<11}{summary.feature_count:>6}")
    constants_row = f"    {'Constants:':<11}{summary.constant_count:>6}"
    if summary.bitmask_count > 0:
        constants_row += f"  ({summary.bitmask_count} bitmask)"
    lines.append(constants_row)
    lines.append(f"    {'Functions:':<11}{summary.function_count:>6}")
    lines.append("")
    lines.append("  Files written:")
    for file_result in summary.files:
        lines.append(f"    {file_result.filename:<16} {file_result.line_count:>8,} lines")

    total_lines = sum(f.line_count for f in summary.files)
    lines.append("")
    lines.append(f"  Total: {total_lines:,} lines across {len(summary.files)} files")
    lines.append("")
    lines.append(f"  Verify: cargo check --manifest-path {summary.output_dir}/Cargo.toml")
    lines.append("")
    return "\n".join(lines)


def print_generation_summary(summary: GenerationSummary) -> None:
    print(format_generation_summary(summary), end="")


# ===--- Main ---=== #


def main(argv: list[str] | None = None):
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}", file=sys.stderr)
        if err.suggestion:
            print(f"Hint: {err.suggestion}", file=sys.stderr)
        raise SystemExit(1) from err

    try:
        if isinstance(config, DiscoveryConfig):
            run_discovery(config)
        else:
            run_generate(config)
    except RegistryError as err:
        print(f"Registry error [{err.code}]: {err.message}", file=sys.stderr)
        raise SystemExit(1) from err
    except OSError as err:
        print(f"Error: {err}", file=sys.stderr)
        raise SystemExit(1) from err
    except (RuntimeError, ValueError) as err:
        print(f"Internal error: {err}", file=sys.stderr)
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
