"""
Write-path persistence for the collaborative document service.
"""
