"""
Order subsystem.

- enums: statuses, history actions and notification kinds
- numbering: human-readable order number allocation
- state_machine: lifecycle and edit-window rules
- repository: order records over the record store
- service: create, edit, receive and list operations
"""
