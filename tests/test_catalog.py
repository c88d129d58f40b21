from enum import Enum

import pytest

from app.ehs.modules.module_registry.catalog import ModuleDescriptor, build_catalog
from app.ehs.modules.module_registry.definitions import PLATFORM_MODULES, ModuleType
from app.ehs.modules.module_registry.errors import (
    CatalogError,
    CyclicDependencyError,
    DuplicateModuleError,
    ErrorKind,
    InvalidDescriptorError,
    UnknownModuleError,
    UnknownReferenceError,
)


class T(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    X = "X"


def test_platform_catalog_builds():
    cat = build_catalog(PLATFORM_MODULES)
    assert len(cat) == len(ModuleType)
    for t in ModuleType:
        assert t in cat
    assert cat.graph.detect_cycle() is None


def test_platform_catalog_core_modules_pinned():
    cat = build_catalog(PLATFORM_MODULES)
    for t in (ModuleType.DASHBOARD, ModuleType.USER_MANAGEMENT, ModuleType.APPLICATION_SETTINGS):
        d = cat[t]
        assert d.can_be_disabled is False
        assert d.is_enabled_by_default is True


def test_lookup_by_string_value():
    cat = build_catalog(PLATFORM_MODULES)
    assert cat["IncidentManagement"].type is ModuleType.INCIDENT_MANAGEMENT
    assert cat.resolve("Reporting") is ModuleType.REPORTING


def test_unknown_module_lookup_raises():
    cat = build_catalog(PLATFORM_MODULES)
    with pytest.raises(UnknownModuleError) as ei:
        cat["NoSuchModule"]
    assert ei.value.kind == ErrorKind.UNKNOWN_MODULE
    assert "NoSuchModule" not in cat


def test_unknown_required_reference_is_fatal():
    with pytest.raises(UnknownReferenceError) as ei:
        build_catalog([ModuleDescriptor(type=T.A, display_name="A", required_dependencies=(T.X,))])
    assert ei.value.missing == (T.X,)
    assert ei.value.kind == ErrorKind.UNKNOWN_REFERENCE


def test_unknown_optional_reference_is_fatal():
    with pytest.raises(UnknownReferenceError):
        build_catalog([ModuleDescriptor(type=T.A, display_name="A", optional_dependencies=("Nope",))])


def test_cycle_is_fatal_and_reports_members():
    descriptors = [
        ModuleDescriptor(type=T.A, display_name="A", required_dependencies=(T.C,)),
        ModuleDescriptor(type=T.B, display_name="B", required_dependencies=(T.A,)),
        ModuleDescriptor(type=T.C, display_name="C", required_dependencies=(T.B,)),
        ModuleDescriptor(type=T.X, display_name="X"),
    ]
    with pytest.raises(CyclicDependencyError) as ei:
        build_catalog(descriptors)
    assert {T.A, T.B, T.C} <= ei.value.members
    assert ei.value.kind == ErrorKind.CYCLIC_DEPENDENCY
    assert isinstance(ei.value, CatalogError)


def test_optional_edges_may_form_a_loop():
    cat = build_catalog(
        [
            ModuleDescriptor(type=T.A, display_name="A", optional_dependencies=(T.B,)),
            ModuleDescriptor(type=T.B, display_name="B", optional_dependencies=(T.A,)),
        ]
    )
    assert len(cat) == 2


def test_pinned_module_must_start_enabled():
    with pytest.raises(InvalidDescriptorError):
        build_catalog(
            [ModuleDescriptor(type=T.A, display_name="A", can_be_disabled=False, is_enabled_by_default=False)]
        )


def test_duplicate_type_rejected():
    with pytest.raises(DuplicateModuleError):
        build_catalog([ModuleDescriptor(type=T.A, display_name="A"), ModuleDescriptor(type="A", display_name="A2")])


def test_string_references_normalized_to_enum_members():
    cat = build_catalog(
        [
            ModuleDescriptor(type=T.A, display_name="A"),
            ModuleDescriptor(type=T.B, display_name="B", required_dependencies=("A",)),
        ]
    )
    assert cat[T.B].required_dependencies == (T.A,)
    assert cat.graph.dependents(T.A) == {T.B}


def test_ordered_by_display_order_then_name_then_declaration():
    cat = build_catalog(
        [
            ModuleDescriptor(type=T.A, display_name="Zulu", display_order=1),
            ModuleDescriptor(type=T.B, display_name="Alpha", display_order=1),
            ModuleDescriptor(type=T.C, display_name="Mike", display_order=0),
            ModuleDescriptor(type=T.X, display_name="Alpha", display_order=1),
        ]
    )
    assert [d.type for d in cat.ordered()] == [T.C, T.B, T.X, T.A]


def test_duplicate_dependency_entries_collapse():
    d = ModuleDescriptor(type=T.B, display_name="B", required_dependencies=[T.A, T.A])
    assert d.required_dependencies == (T.A,)


def test_parent_must_be_declared():
    with pytest.raises(UnknownReferenceError) as ei:
        build_catalog([ModuleDescriptor(type=T.A, display_name="A", parent=T.X)])
    assert ei.value.missing == (T.X,)


def test_parent_cannot_be_self():
    with pytest.raises(InvalidDescriptorError):
        build_catalog([ModuleDescriptor(type=T.A, display_name="A", parent="A")])


def test_parent_chain_must_not_loop():
    with pytest.raises(InvalidDescriptorError):
        build_catalog(
            [
                ModuleDescriptor(type=T.A, display_name="A", parent=T.C),
                ModuleDescriptor(type=T.B, display_name="B", parent=T.A),
                ModuleDescriptor(type=T.C, display_name="C", parent=T.B),
            ]
        )


def test_children_and_roots():
    cat = build_catalog(
        [
            ModuleDescriptor(type=T.A, display_name="A"),
            ModuleDescriptor(type=T.B, display_name="B", parent="A", display_order=2),
            ModuleDescriptor(type=T.C, display_name="C", parent=T.A, display_order=1),
            ModuleDescriptor(type=T.X, display_name="X", parent=T.C),
        ]
    )
    assert cat[T.B].parent is T.A
    assert cat.children("A") == [T.C, T.B]
    assert cat.children(T.C) == [T.X]
    assert cat.roots() == [T.A]
    # Grouping adds no dependency edges.
    assert cat.graph.closure(T.X) == frozenset()


def test_platform_security_group():
    cat = build_catalog(PLATFORM_MODULES)
    assert cat.children(ModuleType.SECURITY_INCIDENT_MANAGEMENT) == [
        ModuleType.PHYSICAL_SECURITY,
        ModuleType.INFORMATION_SECURITY,
        ModuleType.PERSONNEL_SECURITY,
    ]
    assert ModuleType.COMPLIANCE_MANAGEMENT in cat.children(ModuleType.AUDIT_MANAGEMENT)
