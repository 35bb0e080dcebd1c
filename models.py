from __future__ import annotations

from sqlalchemy import Boolean, Column, Float, Index, Integer, String, Text, UniqueConstraint

from db import Base


class IdCounter(Base):
    __tablename__ = "id_counters"

    key = Column(String, primary_key=True)
    nextValue = Column(Integer, nullable=False, default=1)


class Organization(Base):
    __tablename__ = "organizations"

    organizationId = Column(String, primary_key=True)
    companyName = Column(Text, nullable=False, unique=True)
    slug = Column(String, nullable=False, unique=True, index=True)
    logo = Column(Text, nullable=False, default="")
    themeJson = Column(Text, nullable=False, default="")
    emailSettingsJson = Column(Text, nullable=False, default="")
    departmentsJson = Column(Text, nullable=False, default="")
    policiesJson = Column(Text, nullable=False, default="")
    subscriptionPlan = Column(String, nullable=False, default="free")
    subscriptionStatus = Column(String, nullable=False, default="active", index=True)
    userLimit = Column(Integer, nullable=False, default=5)
    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (UniqueConstraint("organizationId", "email", name="uq_users_org_email"),)

    userId = Column(String, primary_key=True)
    organizationId = Column(String, nullable=False, default="", index=True)
    email = Column(String, nullable=False, index=True)
    fullName = Column(Text, nullable=False, default="")
    # admin | superadmin | employee
    role = Column(String, nullable=False, default="employee", index=True)
    passwordHash = Column(Text, nullable=False, default="")
    isActive = Column(Boolean, nullable=False, default=False, index=True)
    isEmailVerified = Column(Boolean, nullable=False, default=False)
    phone = Column(String, nullable=False, default="")
    designation = Column(Text, nullable=False, default="")
    department = Column(Text, nullable=False, default="")
    salary = Column(Float, nullable=False, default=0)
    joiningDate = Column(Text, nullable=False, default="")
    # avatar, cnicImage, dateOfBirth, address, emergencyContact, socialLinks
    profileJson = Column(Text, nullable=False, default="")
    lastLoginAt = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class Session(Base):
    __tablename__ = "sessions"

    sessionId = Column(String, primary_key=True)
    tokenHash = Column(String, nullable=False, unique=True, index=True)
    userId = Column(String, nullable=False, default="", index=True)
    organizationId = Column(String, nullable=False, default="")
    email = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default="", index=True)
    issuedAt = Column(Text, nullable=False, default="")
    expiresAt = Column(Text, nullable=False, default="")
    lastSeenAt = Column(Text, nullable=False, default="")
    revokedAt = Column(Text, nullable=False, default="")
    revokedBy = Column(String, nullable=False, default="")


class Onboarding(Base):
    __tablename__ = "onboardings"
    __table_args__ = (Index("ix_onboardings_org_email_status", "organizationId", "email", "status"),)

    onboardingId = Column(String, primary_key=True)
    organizationId = Column(String, nullable=False, index=True)
    employeeId = Column(String, nullable=False, default="", index=True)

    # Offer snapshot
    fullName = Column(Text, nullable=False, default="")
    email = Column(String, nullable=False, default="")
    designation = Column(Text, nullable=False, default="")
    department = Column(Text, nullable=False, default="")
    salary = Column(Float, nullable=False, default=0)
    joiningDate = Column(Text, nullable=False, default="")
    phone = Column(String, nullable=False, default="")

    # pending | accepted | rejected | expired | revoked | completed
    status = Column(String, nullable=False, default="pending", index=True)
    tokenHash = Column(String, nullable=False, default="", index=True)
    tokenExpiry = Column(Text, nullable=False, default="")

    offerSentAt = Column(Text, nullable=False, default="")
    respondedAt = Column(Text, nullable=False, default="")
    rejectionReason = Column(Text, nullable=False, default="")
    completedAt = Column(Text, nullable=False, default="")
    expiredAt = Column(Text, nullable=False, default="")
    revokedAt = Column(Text, nullable=False, default="")
    revokedBy = Column(String, nullable=False, default="")
    revocationReason = Column(Text, nullable=False, default="")

    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class EmploymentForm(Base):
    __tablename__ = "employment_forms"
    __table_args__ = (
        Index("ix_employment_forms_org_status", "organizationId", "status"),
        Index("ix_employment_forms_email_org", "employeeEmail", "organizationId"),
    )

    formId = Column(String, primary_key=True)
    organizationId = Column(String, nullable=False, index=True)
    appointmentLetterId = Column(String, nullable=False, default="", index=True)
    onboardingId = Column(String, nullable=False, default="", index=True)
    employeeEmail = Column(String, nullable=False, default="")

    personalInfoJson = Column(Text, nullable=False, default="")
    cnicInfoJson = Column(Text, nullable=False, default="")
    contactInfoJson = Column(Text, nullable=False, default="")
    addressesJson = Column(Text, nullable=False, default="")
    acceptedPoliciesJson = Column(Text, nullable=False, default="")

    # draft | pending_review | approved | rejected | needs_revision
    status = Column(String, nullable=False, default="draft", index=True)
    tokenHash = Column(String, nullable=False, default="", index=True)
    tokenExpiry = Column(Text, nullable=False, default="")

    submittedAt = Column(Text, nullable=False, default="")
    reviewedAt = Column(Text, nullable=False, default="")
    reviewedBy = Column(String, nullable=False, default="")
    reviewNotes = Column(Text, nullable=False, default="")
    revisionFieldsJson = Column(Text, nullable=False, default="")
    revisionRequestedAt = Column(Text, nullable=False, default="")

    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class EmploymentContract(Base):
    __tablename__ = "employment_contracts"

    contractId = Column(String, primary_key=True)
    organizationId = Column(String, nullable=False, index=True)
    employmentFormId = Column(String, nullable=False, default="", index=True)
    employeeId = Column(String, nullable=False, default="")
    employeeEmail = Column(String, nullable=False, default="")
    employeeName = Column(Text, nullable=False, default="")

    contractDetailsJson = Column(Text, nullable=False, default="")
    signaturesJson = Column(Text, nullable=False, default="")

    # draft | sent | signed | completed | terminated
    status = Column(String, nullable=False, default="draft", index=True)
    tokenHash = Column(String, nullable=False, default="", index=True)
    tokenExpiry = Column(Text, nullable=False, default="")

    sentAt = Column(Text, nullable=False, default="")
    signedAt = Column(Text, nullable=False, default="")
    completedAt = Column(Text, nullable=False, default="")
    terminatedAt = Column(Text, nullable=False, default="")
    terminationReason = Column(Text, nullable=False, default="")

    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class AppointmentLetter(Base):
    __tablename__ = "appointment_letters"

    letterId = Column(String, primary_key=True)
    organizationId = Column(String, nullable=False, index=True)
    employeeEmail = Column(String, nullable=False, default="")
    employeeName = Column(Text, nullable=False, default="")
    letterContentJson = Column(Text, nullable=False, default="")

    # sent | viewed | accepted | rejected
    status = Column(String, nullable=False, default="sent", index=True)
    tokenHash = Column(String, nullable=False, default="", index=True)
    tokenExpiry = Column(Text, nullable=False, default="")

    sentAt = Column(Text, nullable=False, default="")
    viewedAt = Column(Text, nullable=False, default="")
    respondedAt = Column(Text, nullable=False, default="")
    response = Column(Text, nullable=False, default="")

    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class Candidate(Base):
    __tablename__ = "candidates"

    candidateId = Column(String, primary_key=True)
    organizationId = Column(String, nullable=False, index=True)
    fullName = Column(Text, nullable=False, default="")
    email = Column(String, nullable=False, default="", index=True)
    phone = Column(String, nullable=False, default="")
    source = Column(String, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class Application(Base):
    __tablename__ = "applications"

    applicationId = Column(String, primary_key=True)
    organizationId = Column(String, nullable=False, index=True)
    candidateId = Column(String, nullable=False, index=True)
    candidateEmail = Column(String, nullable=False, default="", index=True)
    positionTitle = Column(Text, nullable=False, default="")
    department = Column(Text, nullable=False, default="")
    employmentType = Column(String, nullable=False, default="full-time")

    # applied | screening | interview | offer | hired | rejected
    stage = Column(String, nullable=False, default="applied", index=True)
    timelineJson = Column(Text, nullable=False, default="")
    offerJson = Column(Text, nullable=False, default="")
    onboardingId = Column(String, nullable=False, default="")

    createdAt = Column(Text, nullable=False, default="")
    createdBy = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
    updatedBy = Column(String, nullable=False, default="")


class AuditLog(Base):
    __tablename__ = "audit_log"

    logId = Column(String, primary_key=True)
    organizationId = Column(String, nullable=False, default="", index=True)
    entityType = Column(String, nullable=False, default="", index=True)
    entityId = Column(String, nullable=False, default="", index=True)
    action = Column(String, nullable=False, default="", index=True)
    fromState = Column(String, nullable=False, default="")
    toState = Column(String, nullable=False, default="")
    stageTag = Column(String, nullable=False, default="", index=True)
    remark = Column(Text, nullable=False, default="")
    actorUserId = Column(String, nullable=False, default="", index=True)
    actorRole = Column(String, nullable=False, default="", index=True)
    actorEmail = Column(Text, nullable=False, default="")
    at = Column(Text, nullable=False, default="", index=True)
    correlationId = Column(String, nullable=False, default="", index=True)
    metaJson = Column(Text, nullable=False, default="")
