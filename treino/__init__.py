"""Core (UI-agnostic) TreinoExpresso logic.

This package contains:
- spreadsheet loading and row normalization (storage bytes -> pandas)
- record classification (certification expiry, status buckets)
- view projection (pt-BR formatting, WhatsApp message templates)
- page compute functions (JSON-serializable payloads)
- workflows over Firestore / Cloud Storage (prestações, agendamentos, arquivos)
"""
