"""Claude access: model names, prompt assembly and reply generation."""
