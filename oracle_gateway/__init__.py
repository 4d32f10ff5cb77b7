"""Oracle gateway: attested price updates for Aleo programs."""
