"""
Static module catalog for the EHS platform.

Each feature area declares itself here. The list is consumed as-is by
`build_catalog` at startup; nothing is discovered at runtime.
"""
from __future__ import annotations

from enum import Enum

from app.ehs.modules.module_registry.catalog import ModuleDescriptor


class ModuleType(str, Enum):
    DASHBOARD = "Dashboard"
    USER_MANAGEMENT = "UserManagement"
    APPLICATION_SETTINGS = "ApplicationSettings"
    INCIDENT_MANAGEMENT = "IncidentManagement"
    RISK_MANAGEMENT = "RiskManagement"
    INSPECTION_MANAGEMENT = "InspectionManagement"
    AUDIT_MANAGEMENT = "AuditManagement"
    PPE_MANAGEMENT = "PPEManagement"
    TRAINING_MANAGEMENT = "TrainingManagement"
    LICENSE_MANAGEMENT = "LicenseManagement"
    WASTE_MANAGEMENT = "WasteManagement"
    HEALTH_MONITORING = "HealthMonitoring"
    WORK_PERMIT_MANAGEMENT = "WorkPermitManagement"
    PHYSICAL_SECURITY = "PhysicalSecurity"
    INFORMATION_SECURITY = "InformationSecurity"
    PERSONNEL_SECURITY = "PersonnelSecurity"
    SECURITY_INCIDENT_MANAGEMENT = "SecurityIncidentManagement"
    COMPLIANCE_MANAGEMENT = "ComplianceManagement"
    REPORTING = "Reporting"
    WORKFLOW_MANAGEMENT = "WorkflowManagement"


M = ModuleType

PLATFORM_MODULES: tuple[ModuleDescriptor, ...] = (
    # Core (pinned)
    ModuleDescriptor(
        type=M.DASHBOARD,
        display_name="Dashboard",
        description="Main dashboard and overview",
        icon="fas fa-tachometer-alt",
        display_order=0,
        can_be_disabled=False,
    ),
    ModuleDescriptor(
        type=M.USER_MANAGEMENT,
        display_name="User Management",
        description="User accounts, roles, and permissions",
        icon="fas fa-users",
        display_order=1,
        can_be_disabled=False,
    ),
    ModuleDescriptor(
        type=M.APPLICATION_SETTINGS,
        display_name="Application Settings",
        description="System configuration and settings",
        icon="fas fa-cog",
        display_order=2,
        can_be_disabled=False,
    ),
    # Operational HSE
    ModuleDescriptor(
        type=M.INCIDENT_MANAGEMENT,
        display_name="Incident Management",
        description="Incident reporting, investigation and corrective actions",
        icon="fas fa-exclamation-triangle",
        display_order=10,
        required_dependencies=(M.USER_MANAGEMENT,),
        optional_dependencies=(M.RISK_MANAGEMENT, M.HEALTH_MONITORING),
    ),
    ModuleDescriptor(
        type=M.RISK_MANAGEMENT,
        display_name="Risk Management",
        description="Hazard identification and risk assessments",
        icon="fas fa-shield-alt",
        display_order=11,
        required_dependencies=(M.USER_MANAGEMENT,),
        optional_dependencies=(M.INCIDENT_MANAGEMENT,),
    ),
    ModuleDescriptor(
        type=M.INSPECTION_MANAGEMENT,
        display_name="Inspection Management",
        description="Scheduled inspections, checklists and findings",
        icon="fas fa-clipboard-check",
        display_order=12,
        required_dependencies=(M.USER_MANAGEMENT,),
        optional_dependencies=(M.RISK_MANAGEMENT,),
    ),
    ModuleDescriptor(
        type=M.AUDIT_MANAGEMENT,
        display_name="Audit Management",
        description="Audit planning, execution and findings",
        icon="fas fa-search",
        display_order=13,
        required_dependencies=(M.USER_MANAGEMENT, M.INSPECTION_MANAGEMENT),
        optional_dependencies=(M.COMPLIANCE_MANAGEMENT,),
    ),
    ModuleDescriptor(
        type=M.PPE_MANAGEMENT,
        display_name="PPE Management",
        description="Personal protective equipment inventory and assignments",
        icon="fas fa-hard-hat",
        display_order=14,
        required_dependencies=(M.USER_MANAGEMENT,),
        optional_dependencies=(M.TRAINING_MANAGEMENT,),
    ),
    ModuleDescriptor(
        type=M.TRAINING_MANAGEMENT,
        display_name="Training Management",
        description="Training sessions, participants and certifications",
        icon="fas fa-graduation-cap",
        display_order=15,
        required_dependencies=(M.USER_MANAGEMENT,),
        optional_dependencies=(M.LICENSE_MANAGEMENT,),
    ),
    ModuleDescriptor(
        type=M.LICENSE_MANAGEMENT,
        display_name="License Management",
        description="Permits, licenses and renewal tracking",
        icon="fas fa-id-card",
        display_order=16,
        required_dependencies=(M.USER_MANAGEMENT,),
        optional_dependencies=(M.TRAINING_MANAGEMENT,),
    ),
    ModuleDescriptor(
        type=M.WASTE_MANAGEMENT,
        display_name="Waste Management",
        description="Waste reports, disposal providers and manifests",
        icon="fas fa-recycle",
        display_order=17,
        required_dependencies=(M.USER_MANAGEMENT,),
        optional_dependencies=(M.COMPLIANCE_MANAGEMENT,),
    ),
    ModuleDescriptor(
        type=M.HEALTH_MONITORING,
        display_name="Health Monitoring",
        description="Health records, vaccinations and medical surveillance",
        icon="fas fa-heartbeat",
        display_order=18,
        required_dependencies=(M.USER_MANAGEMENT,),
        optional_dependencies=(M.INCIDENT_MANAGEMENT,),
    ),
    ModuleDescriptor(
        type=M.WORK_PERMIT_MANAGEMENT,
        display_name="Work Permit Management",
        description="Permit-to-work requests, approvals and safety inductions",
        icon="fas fa-file-signature",
        display_order=19,
        required_dependencies=(M.USER_MANAGEMENT, M.TRAINING_MANAGEMENT),
        optional_dependencies=(M.RISK_MANAGEMENT,),
    ),
    # Security (opt-in)
    ModuleDescriptor(
        type=M.PHYSICAL_SECURITY,
        display_name="Physical Security",
        description="Access control and site security",
        icon="fas fa-lock",
        display_order=30,
        is_enabled_by_default=False,
        required_dependencies=(M.USER_MANAGEMENT,),
        parent=M.SECURITY_INCIDENT_MANAGEMENT,
    ),
    ModuleDescriptor(
        type=M.INFORMATION_SECURITY,
        display_name="Information Security",
        description="Information security controls and threat indicators",
        icon="fas fa-user-secret",
        display_order=31,
        is_enabled_by_default=False,
        required_dependencies=(M.USER_MANAGEMENT,),
        parent=M.SECURITY_INCIDENT_MANAGEMENT,
    ),
    ModuleDescriptor(
        type=M.PERSONNEL_SECURITY,
        display_name="Personnel Security",
        description="Background checks and personnel vetting",
        icon="fas fa-user-shield",
        display_order=32,
        is_enabled_by_default=False,
        required_dependencies=(M.USER_MANAGEMENT,),
        parent=M.SECURITY_INCIDENT_MANAGEMENT,
    ),
    ModuleDescriptor(
        type=M.SECURITY_INCIDENT_MANAGEMENT,
        display_name="Security Incident Management",
        description="Security incident reporting and response",
        icon="fas fa-bell",
        display_order=33,
        is_enabled_by_default=False,
        required_dependencies=(M.INCIDENT_MANAGEMENT,),
        optional_dependencies=(M.PHYSICAL_SECURITY, M.INFORMATION_SECURITY, M.PERSONNEL_SECURITY),
        disable_warning="Security incident reporting and response will be unavailable",
    ),
    # Governance
    ModuleDescriptor(
        type=M.COMPLIANCE_MANAGEMENT,
        display_name="Compliance Management",
        description="Regulatory requirements and compliance monitoring",
        icon="fas fa-balance-scale",
        display_order=40,
        is_enabled_by_default=False,
        required_dependencies=(M.AUDIT_MANAGEMENT,),
        parent=M.AUDIT_MANAGEMENT,
        disable_warning="Compliance monitoring and audit tracking will be disabled",
    ),
    ModuleDescriptor(
        type=M.REPORTING,
        display_name="Reporting",
        description="Cross-module reports and KPI dashboards",
        icon="fas fa-chart-line",
        display_order=41,
        required_dependencies=(M.DASHBOARD,),
        optional_dependencies=(M.INCIDENT_MANAGEMENT, M.INSPECTION_MANAGEMENT, M.AUDIT_MANAGEMENT),
        disable_warning="Reports from all modules will be unavailable",
    ),
    ModuleDescriptor(
        type=M.WORKFLOW_MANAGEMENT,
        display_name="Workflow Management",
        description="Workflow designer and process automation",
        icon="fas fa-project-diagram",
        display_order=42,
        is_enabled_by_default=False,
        required_dependencies=(M.APPLICATION_SETTINGS,),
    ),
)
