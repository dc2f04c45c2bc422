# gotmpls/registry.py
"""
Type Registry Builder.

Loads every non-test ``.go`` file of a package directory, qualifies the
declared types against the package import path and each file's imports, and
produces an immutable :class:`~gotmpls.gotypes.TypeRegistry`.

Types that cannot be resolved (undeclared local names, unknown import
aliases, generic types) are logged, recorded in ``TypeRegistry.unresolved``
and left out of the registry.  A struct embedding an external type outside
the standard table is kept; it lists that type in ``opaque_embeds`` and gets
no promoted members from it.  Any failure to read or parse the package
itself is fatal.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from gotmpls.builtins import STD_TYPES
from gotmpls.config import AnalysisConfig
from gotmpls.errors import GotmplsErrorCodes, PackageLoadError, SourceSpan
from gotmpls.gosource import (
    GoFile,
    GoFunc,
    GoInterface,
    GoTypeSpec,
    Signature,
    TypeName,
    parse_go_source,
)
from gotmpls.gotypes import (
    ANY,
    BASIC_NAMES,
    ArrayType,
    BasicType,
    ChanType,
    FieldDescriptor,
    FuncType,
    GoType,
    InterfaceType,
    MapType,
    MethodDescriptor,
    NamedType,
    PointerType,
    SliceType,
    StructField,
    StructType,
    TypeDescriptor,
    TypeRegistry,
    deref,
)

logger = logging.getLogger(__name__)

_MODULE_RE = re.compile(r"^\s*module\s+(\S+)", re.MULTILINE)

Member = Union[FieldDescriptor, MethodDescriptor]


class _Unresolved(Exception):
    """A type expression could not be qualified."""


@dataclass(frozen=True, slots=True)
class _Candidate:
    depth: int
    origin: Optional[str]
    member: Member


# ═══════════════════════════════════════════════════════════════════════════
# PACKAGE DISCOVERY
# ═══════════════════════════════════════════════════════════════════════════


def go_source_files(directory: Path) -> List[Path]:
    return sorted(
        p
        for p in directory.glob("*.go")
        if p.is_file() and not p.name.endswith("_test.go")
    )


def find_import_path(directory: Path, package_name: str) -> str:
    """
    Derive the package import path from the nearest ``go.mod``.

    Falls back to the package name when no module file is found.
    """
    directory = directory.resolve()
    for candidate in (directory, *directory.parents):
        go_mod = candidate / "go.mod"
        if not go_mod.is_file():
            continue
        match = _MODULE_RE.search(go_mod.read_text(encoding="utf-8", errors="replace"))
        if match is None:
            break
        module = match.group(1).strip('"')
        rel = directory.relative_to(candidate).as_posix()
        return module if rel == "." else f"{module}/{rel}"
    return package_name


def load_go_files(directory: Path) -> List[GoFile]:
    if not directory.is_dir():
        raise PackageLoadError(
            f"package directory not found: {directory}",
            code=GotmplsErrorCodes.PACKAGE_NOT_FOUND,
        )
    paths = go_source_files(directory)
    if not paths:
        raise PackageLoadError(
            f"no Go source files in {directory}", code=GotmplsErrorCodes.NO_GO_FILES
        )
    files = []
    for path in paths:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise PackageLoadError(
                f"cannot read {path}: {exc}", SourceSpan.unknown(str(path))
            ) from exc
        files.append(parse_go_source(text, str(path)))
    packages = {f.package for f in files}
    if len(packages) > 1:
        raise PackageLoadError(
            f"found packages {', '.join(sorted(packages))} in {directory}",
            code=GotmplsErrorCodes.PACKAGE_MISMATCH,
        )
    return files


# ═══════════════════════════════════════════════════════════════════════════
# BUILDER
# ═══════════════════════════════════════════════════════════════════════════


class RegistryBuilder:
    """Qualifies parsed declarations and computes member sets."""

    def __init__(
        self,
        files: List[GoFile],
        import_path: str,
        config: Optional[AnalysisConfig] = None,
    ) -> None:
        self.files = files
        self.import_path = import_path
        self.package_name = files[0].package if files else ""
        self.config = config or AnalysisConfig()
        self._specs: Dict[str, Tuple[GoTypeSpec, GoFile]] = {}
        self._underlying: Dict[str, GoType] = {}
        self._interfaces: Dict[str, GoInterface] = {}
        self._methods: Dict[str, Dict[str, MethodDescriptor]] = {}
        self._members: Dict[str, Dict[str, Member]] = {}
        self.unresolved: Dict[str, str] = {}

    # ── qualification ───────────────────────────────────────────────────

    def _local(self, name: str) -> NamedType:
        return NamedType(self.import_path, name, self.package_name)

    def resolve(self, expr, go_file: GoFile) -> GoType:
        if isinstance(expr, TypeName):
            return self._resolve_name(expr, go_file)
        if isinstance(expr, PointerType):
            return PointerType(self.resolve(expr.elem, go_file))
        if isinstance(expr, SliceType):
            return SliceType(self.resolve(expr.elem, go_file))
        if isinstance(expr, ArrayType):
            return ArrayType(expr.length, self.resolve(expr.elem, go_file))
        if isinstance(expr, MapType):
            return MapType(
                self.resolve(expr.key, go_file), self.resolve(expr.value, go_file)
            )
        if isinstance(expr, ChanType):
            return ChanType(self.resolve(expr.elem, go_file), expr.direction)
        if isinstance(expr, FuncType):
            return FuncType(
                tuple(self.resolve(p, go_file) for p in expr.params),
                tuple(self.resolve(r, go_file) for r in expr.results),
                expr.variadic,
            )
        if isinstance(expr, StructType):
            return StructType(
                tuple(
                    StructField(f.name, self.resolve(f.type, go_file), f.embedded)
                    for f in expr.fields
                )
            )
        if isinstance(expr, GoInterface):
            return self._interface_type(expr, go_file)
        return expr

    def _resolve_name(self, ref: TypeName, go_file: GoFile) -> GoType:
        if ref.qualifier:
            imp = go_file.import_for(ref.qualifier)
            if imp is None:
                raise _Unresolved(f"unknown import alias {ref.qualifier!r}")
            return NamedType(imp.path, ref.name, imp.name)
        if ref.name in self._specs:
            if ref.args:
                raise _Unresolved(f"instantiation of generic type {ref}")
            return self._local(ref.name)
        if ref.name == "any":
            return ANY
        if ref.name in BASIC_NAMES:
            return BasicType(ref.name)
        raise _Unresolved(f"undeclared type {ref.name!r}")

    def _interface_type(self, iface: GoInterface, go_file: GoFile) -> InterfaceType:
        rendered = []
        for m in iface.methods:
            sig = self._signature(m.signature, go_file)
            rendered.append(f"{m.name}{str(sig)[4:]}")
        for embed in iface.embeds:
            rendered.append(str(self.resolve(embed, go_file)))
        return InterfaceType(tuple(rendered))

    def _signature(self, sig: Signature, go_file: GoFile) -> FuncType:
        return FuncType(
            tuple(self.resolve(p, go_file) for p in sig.params),
            tuple(self.resolve(r, go_file) for r in sig.results),
            sig.variadic,
        )

    # ── phases ──────────────────────────────────────────────────────────

    def _exclude(self, name: str, reason: str) -> None:
        qualified = self._local(name).qualified
        self.unresolved[qualified] = reason
        logger.warning("excluding type %s: %s", qualified, reason)

    def _collect_specs(self) -> None:
        for go_file in self.files:
            for spec in go_file.types:
                if spec.name in self._specs:
                    raise PackageLoadError(
                        f"type {spec.name} redeclared in {go_file.path}",
                        code=GotmplsErrorCodes.PACKAGE_MISMATCH,
                    )
                self._specs[spec.name] = (spec, go_file)

    def _resolve_specs(self) -> None:
        for name, (spec, go_file) in self._specs.items():
            if not self.config.include_unexported and not name[:1].isupper():
                continue
            if spec.generic:
                self._exclude(name, "generic types are not supported")
                continue
            try:
                underlying = self.resolve(spec.type, go_file)
            except _Unresolved as exc:
                self._exclude(name, str(exc))
                continue
            self._underlying[name] = underlying
            if isinstance(spec.type, GoInterface):
                self._interfaces[name] = spec.type

        # Types that embed an excluded local type are excluded too.
        changed = True
        while changed:
            changed = False
            for name, underlying in list(self._underlying.items()):
                for embedded in self._embedded_locals(underlying):
                    if embedded not in self._underlying and embedded in self._specs:
                        self._exclude(name, f"embeds unresolved type {embedded}")
                        del self._underlying[name]
                        changed = True
                        break

    def _embedded_locals(self, underlying: GoType) -> Iterable[str]:
        if not isinstance(underlying, StructType):
            return ()
        names = []
        for f in underlying.fields:
            target = deref(f.type)
            if f.embedded and isinstance(target, NamedType):
                if target.package == self.import_path:
                    names.append(target.name)
        return names

    def _resolve_methods(self) -> None:
        for go_file in self.files:
            for func in go_file.funcs:
                if func.receiver is None or func.receiver not in self._underlying:
                    continue
                self._add_method(func, go_file)

    def _add_method(self, func: GoFunc, go_file: GoFile) -> None:
        try:
            sig = self._signature(func.signature, go_file)
        except _Unresolved as exc:
            key = f"{self._local(func.receiver).qualified}.{func.name}"
            self.unresolved[key] = str(exc)
            logger.warning("skipping method %s: %s", key, exc)
            return
        self._methods.setdefault(func.receiver, {})[func.name] = MethodDescriptor(
            name=func.name,
            params=sig.params,
            results=sig.results,
            variadic=sig.variadic,
            pointer_receiver=func.pointer_receiver,
        )

    # ── member sets ─────────────────────────────────────────────────────

    def _own_members(self, name: str) -> Dict[str, Member]:
        own: Dict[str, Member] = {}
        underlying = self._underlying[name]
        struct = self._struct_of(underlying)
        if struct is not None:
            for f in struct.fields:
                own[f.name] = FieldDescriptor(f.name, f.type)
        if name in self._interfaces:
            spec_file = self._specs[name][1]
            for m in self._interfaces[name].methods:
                sig = self._signature(m.signature, spec_file)
                own[m.name] = MethodDescriptor(
                    m.name, sig.params, sig.results, sig.variadic
                )
        spec = self._specs[name][0]
        if spec.alias and isinstance(underlying, NamedType):
            own.update(self._methods.get(underlying.name, {}))
        own.update(self._methods.get(name, {}))
        return own

    def _struct_of(self, t: GoType, depth: int = 0) -> Optional[StructType]:
        if isinstance(t, StructType):
            return t
        if depth < 16 and isinstance(t, NamedType) and t.package == self.import_path:
            inner = self._underlying.get(t.name)
            if inner is not None:
                return self._struct_of(inner, depth + 1)
        return None

    def _embedded_members(self, t: GoType, visiting: Set[str]) -> Dict[str, Member]:
        target = deref(t)
        if not isinstance(target, NamedType):
            return {}
        if target.package == self.import_path:
            if target.name in visiting or target.name not in self._underlying:
                return {}
            return self.members(target.name, visiting)
        std = STD_TYPES.get(target.qualified)
        if std is None:
            # Only the embedded field itself is known.
            logger.debug("no promoted members from external type %s", target)
            return {}
        return {**std.fields, **std.methods}

    def opaque_embeds(self, name: str, visiting: Optional[Set[str]] = None) -> Tuple[str, ...]:
        """Unknown external types embedded in *name*, directly or through local embeds."""
        visiting = set(visiting or ()) | {name}
        embedded: List[GoType] = []
        struct = self._struct_of(self._underlying[name])
        if struct is not None:
            embedded += [f.type for f in struct.fields if f.embedded]
        if name in self._interfaces:
            spec_file = self._specs[name][1]
            embedded += [self.resolve(e, spec_file) for e in self._interfaces[name].embeds]
        found: List[str] = []
        for etype in embedded:
            target = deref(etype)
            if not isinstance(target, NamedType):
                continue
            if target.package == self.import_path:
                if target.name not in visiting and target.name in self._underlying:
                    found.extend(self.opaque_embeds(target.name, visiting))
            elif target.qualified not in STD_TYPES:
                found.append(str(target))
        return tuple(dict.fromkeys(found))

    def members(self, name: str, visiting: Optional[Set[str]] = None) -> Dict[str, Member]:
        """Full member set of a local type, including promoted members."""
        if name in self._members:
            return self._members[name]
        visiting = set(visiting or ()) | {name}
        candidates: Dict[str, List[_Candidate]] = {}
        for member_name, member in self._own_members(name).items():
            candidates.setdefault(member_name, []).append(_Candidate(0, None, member))

        interface_embeds: List[GoType] = []
        if name in self._interfaces:
            spec_file = self._specs[name][1]
            interface_embeds = [
                self.resolve(e, spec_file) for e in self._interfaces[name].embeds
            ]
        struct = self._struct_of(self._underlying[name])
        embedded = [(f.name, f.type) for f in (struct.fields if struct else ()) if f.embedded]
        embedded += [(str(t), t) for t in interface_embeds]

        for origin, etype in embedded:
            for member_name, member in self._embedded_members(etype, visiting).items():
                depth = _depth_of(member) + 1
                candidates.setdefault(member_name, []).append(
                    _Candidate(depth, origin, _promote(member, origin))
                )

        result: Dict[str, Member] = {}
        for member_name, options in candidates.items():
            chosen = self._choose(name, member_name, options)
            if chosen is not None:
                result[member_name] = chosen
        self._members[name] = result
        return result

    def _choose(
        self, owner: str, member_name: str, options: List[_Candidate]
    ) -> Optional[Member]:
        if not self.config.literal_fields_win:
            promoted = [o for o in options if o.depth > 0]
            if promoted:
                options = promoted
        best = min(o.depth for o in options)
        winners = [o for o in options if o.depth == best]
        if len(winners) > 1:
            logger.debug("ambiguous member %s.%s dropped", owner, member_name)
            return None
        return winners[0].member

    # ── output ──────────────────────────────────────────────────────────

    def build(self) -> TypeRegistry:
        self._collect_specs()
        self._resolve_specs()
        self._resolve_methods()
        types: Dict[str, TypeDescriptor] = dict(STD_TYPES)
        for name in self._underlying:
            members = self.members(name)
            fields = {
                k: v for k, v in members.items() if isinstance(v, FieldDescriptor)
            }
            methods = {
                k: v for k, v in members.items() if isinstance(v, MethodDescriptor)
            }
            desc = TypeDescriptor(
                name=name,
                package=self.import_path,
                package_name=self.package_name,
                underlying=self._underlying[name],
                fields=MappingProxyType(fields),
                methods=MappingProxyType(methods),
                opaque_embeds=self.opaque_embeds(name),
            )
            types[desc.qualified] = desc
        logger.info(
            "registry for %s: %d types, %d excluded",
            self.import_path, len(self._underlying), len(self.unresolved),
        )
        return TypeRegistry(
            types,
            package=self.import_path,
            package_name=self.package_name,
            unresolved=self.unresolved,
        )


def _depth_of(member: Member) -> int:
    origin = member.promoted_from
    return origin.count(".") + 1 if origin else 0


def _promote(member: Member, origin: str) -> Member:
    path = f"{origin}.{member.promoted_from}" if member.promoted_from else origin
    if isinstance(member, FieldDescriptor):
        return FieldDescriptor(member.name, member.type, promoted_from=path)
    return MethodDescriptor(
        member.name,
        member.params,
        member.results,
        member.variadic,
        member.pointer_receiver,
        promoted_from=path,
    )


# ═══════════════════════════════════════════════════════════════════════════
# ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════


def analyze_package(
    directory: Union[str, Path], config: Optional[AnalysisConfig] = None
) -> TypeRegistry:
    """
    Build the type registry for the Go package in *directory*.

    Raises :class:`~gotmpls.errors.PackageLoadError` when the directory is
    missing, holds no Go files, or a file fails to parse.
    """
    directory = Path(directory)
    files = load_go_files(directory)
    import_path = find_import_path(directory, files[0].package)
    logger.debug("loading package %s from %s", import_path, directory)
    return RegistryBuilder(files, import_path, config).build()


__all__ = [
    "analyze_package",
    "load_go_files",
    "find_import_path",
    "go_source_files",
    "RegistryBuilder",
]
