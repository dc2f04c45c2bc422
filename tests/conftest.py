# tests/conftest.py
"""
Shared fixtures: a small Go package written to a temporary directory, the
registry built from it, and helpers that run templates through the parser
and the validator.
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from gotmpls.config import AnalysisConfig
from gotmpls.diagnostic import RecordKind, ResolutionRecord
from gotmpls.gotypes import TypeRegistry
from gotmpls.parser import parse_template
from gotmpls.registry import analyze_package
from gotmpls.validator import validate

MODULE = "example.com/app"
IMPORT_PATH = f"{MODULE}/models"

MODELS_GO = """\
package models

import (
	"fmt"
	"time"
)

// Person is the data most test templates render.
type Person struct {
	Name      string `json:"name"`
	Age       int
	Email     string
	Tags      []string
	Address   *Address
	Employees []Employee
	Meta      map[string]string
	Scores    map[int]float64
	Born      time.Time
	Active    bool
	Base
}

// Base carries bookkeeping fields promoted into Person.
type Base struct {
	ID      int
	Created time.Time
}

type Address struct {
	Street, City string
}

type Employee struct {
	Name string
	Role string
}

type Shape interface {
	Area() float64
	fmt.Stringer
}

func (p Person) IsAdult() bool {
	return p.Age >= 18
}

func (p *Person) GetName() string {
	return p.Name
}

func (p Person) Greet(greeting string) string {
	return fmt.Sprintf("%s, %s", greeting, p.Name)
}

func (p Person) GetAddress() *Address {
	return p.Address
}

func (p Person) Lookup(key string) (string, error) {
	v, ok := p.Meta[key]
	if !ok {
		return "", fmt.Errorf("no %q", key)
	}
	return v, nil
}

func (p Person) Join(sep string, parts ...string) string {
	return sep
}

func (p Person) Reset() {
}

func (a Address) Full() string {
	return a.Street + ", " + a.City
}
"""


def write_package(root: Path, files: Dict[str, str], module: str = MODULE) -> Path:
    """Write ``go.mod`` into *root* and *files* into ``root/models``."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "go.mod").write_text(f"module {module}\n\ngo 1.22\n", encoding="utf-8")
    pkg = root / "models"
    pkg.mkdir(exist_ok=True)
    for name, content in files.items():
        (pkg / name).write_text(textwrap.dedent(content), encoding="utf-8")
    return pkg


def check(
    source: str,
    registry: TypeRegistry,
    config: Optional[AnalysisConfig] = None,
) -> List[ResolutionRecord]:
    """Parse and validate *source*, returning the ordered records."""
    return validate(parse_template(source, "test.tmpl"), registry, config)


def messages(records: List[ResolutionRecord], kind: RecordKind) -> List[str]:
    return [r.message for r in records if r.kind is kind]


def errors(records: List[ResolutionRecord]) -> List[str]:
    return messages(records, RecordKind.ERROR)


def warnings(records: List[ResolutionRecord]) -> List[str]:
    return messages(records, RecordKind.WARNING)


def hints(records: List[ResolutionRecord]) -> List[str]:
    return [r.message for r in records if r.kind.is_hint]


HEADER = "{{/* gotype: models.Person */}}"


@pytest.fixture
def go_package(tmp_path) -> Path:
    """Directory of the ``models`` package inside a temporary module."""
    return write_package(tmp_path / "app", {"models.go": MODELS_GO})


@pytest.fixture
def registry(go_package) -> TypeRegistry:
    return analyze_package(go_package)


@pytest.fixture
def person(registry):
    return registry.lookup("models.Person")
