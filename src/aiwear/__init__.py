"""Virtual try-on services backed by Gemini, Fal.ai and a Supabase credit ledger."""

__all__ = []
