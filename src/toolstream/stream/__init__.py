"""Stream events and the transform/encode stages applied to them."""
