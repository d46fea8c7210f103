"""
Settlement business layer

- SettlementCoordinator: payment intents, callback verification, refunds
- PaymentGatewayClient / RazorpayGatewayClient: gateway seam
- FeeSchedule: processing fee rules
"""
