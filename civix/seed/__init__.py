"""Demo data for a fresh Civix database (see ``civix.importer``)."""
