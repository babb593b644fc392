"""podmo: ephemeral SSH container fleets on podman."""
