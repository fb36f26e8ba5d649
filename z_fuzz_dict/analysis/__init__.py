"""Call-site classification, string resolution and token normalisation."""
