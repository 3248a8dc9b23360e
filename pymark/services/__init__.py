"""Document services: macro engine and directory lookup."""
