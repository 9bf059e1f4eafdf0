"""Classification tables — crosswalks between land-class schemes."""
