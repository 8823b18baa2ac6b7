"""
Voice Relay - Twilio Media Streams to OpenAI Realtime API Bridge

This application answers phone calls with a speech-to-speech scheduling assistant.
Twilio streams each call's audio over a WebSocket; the relay forwards it to an
OpenAI Realtime session, plays the model's audio back to the caller, and serves the
model's function calls against Square Appointments.

Architecture Overview:
- FastAPI server exposing the ``/media-stream`` WebSocket endpoint for Twilio
- One OpenAI Realtime session per call, configured once for mu-law audio and tools
- A buffer committer that detects end of caller speech by silence
- A tool dispatcher that runs scheduling operations without blocking the audio path

Key Components:
- bot: Realtime API client, buffer committer, tool dispatcher and call supervisor
- config: Application-wide constants, settings and logging setup
- handlers: Event handlers for the telephony leg and the Realtime API leg
- models: Message schemas and per-call session state
- services: Square Appointments scheduling gateway
- websocket_manager: Accepts telephony WebSockets and runs one call per connection

Getting Started:
1. Set up environment variables:
   - OPENAI_API_KEY: Your OpenAI API key
   - SQUARE_ACCESS_TOKEN: Square access token
   - SQUARE_ENV: "sandbox" (default) or "production"
   - PORT / HOST / LOG_LEVEL: Server options

2. Start the server:
   ```bash
   python run.py
   ```

3. Point a Twilio number's TwiML at the server:
   ``<Connect><Stream url="wss://your-server/media-stream"/></Connect>``
"""
