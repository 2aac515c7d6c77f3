"""Provider integrations for remote document stores."""
