"""
Spreadsheet Analytics Application

This package provides a REST API for collaborative spreadsheet analytics.
Users upload Excel workbooks to shared projects, the first sheet is parsed
into a normalized table, and charts are generated from user-selected axes.
Project admins invite collaborators with signed, single-use tokens.

Key modules:
- main.py: FastAPI application, routes and error handlers
- excel_parser.py: Workbook parsing into a NormalizedTable
- chart_data.py / chart_config.py: Chart points and chart descriptors
- invitations.py: Invitation issue / preview / accept lifecycle
- services.py: Auth, project, upload and chart services
- utils/result.py: Result pattern implementation for error handling
"""
