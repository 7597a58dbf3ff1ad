"""
Supplier EPI - Services Package

Business logic services:
- scoring: pure scoring functions
- questionnaire_service: weighted questionnaire access and validation
- evaluation_service: supplier answers and live scores
- submission_workflow: submit / review lifecycle
- audit_recalibration: auditor re-validation and final score
- legacy_migration: one-time upgrade of legacy submission documents
"""
