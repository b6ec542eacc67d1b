"""SupportDesk - support ticketing and live chat API"""
