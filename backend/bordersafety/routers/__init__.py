"""
Router Module Package

- log_admin.py: application log administration (list, create, stats, delete, clear)
- status.py: system status, threat level and broadcasts

All routers are registered in main.py under the configured API prefix.
"""
