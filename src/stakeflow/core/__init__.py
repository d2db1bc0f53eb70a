"""Pure building blocks shared by the delegation feature."""
