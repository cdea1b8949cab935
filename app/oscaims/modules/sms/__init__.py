"""
SMS notices. Messages are rendered and written to the sms_messages outbox;
delivery to a provider happens outside this service.
"""
