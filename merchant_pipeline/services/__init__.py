"""Services métier du board pipeline"""
