"""Service d'association appareil-utilisateur / Device-user association service."""
