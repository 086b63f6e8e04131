"""SecureFlow analysis job pipeline."""
