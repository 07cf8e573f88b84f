"""Tenant file manager: sandboxed transfers and archives over local or SFTP storage."""
