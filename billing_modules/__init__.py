"""
Billing modules: invoicing, proposals and recurring invoices.

Each module follows the same layout:
    models.py     frozen dataclass value objects (no I/O)
    workflows.py  status state machines
    config.py     module configuration schema
    orm.py        SQLAlchemy persistence models
    service.py    transaction-owning service
"""
