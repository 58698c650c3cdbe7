"""Baby Name Rater service: name selection engine, couple ratings and contact chatbot."""
