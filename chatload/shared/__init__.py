"""Cross-cutting helpers shared by every chatload package."""
