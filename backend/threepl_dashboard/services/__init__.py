"""Domain services for KPIs, alerts, users and reports."""
