"""Protocol integrations for genbridge."""
