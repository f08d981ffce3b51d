"""Session, points and achievement models"""
