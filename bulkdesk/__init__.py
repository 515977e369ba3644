"""Bulk Zoho Desk ticket service."""
